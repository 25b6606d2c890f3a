"""Durable state: named key-value collections and the execution history store."""
