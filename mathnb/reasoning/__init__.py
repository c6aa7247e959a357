"""Prompt assembly and the client for the hosted reasoning model."""
