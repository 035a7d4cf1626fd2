"""Tokenizer, symbol table, context inference and completion for the SQL editor."""
