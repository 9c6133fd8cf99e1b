"""Configuration, logging, errors, shared schemas and the solc AST normalizer."""
