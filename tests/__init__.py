"""Signature Sweep Test Suite.

Unit tests live in tests/unit/, one module per library module.

In-memory fakes in fakes.py stand in for:
- the SPARQL piece source (paging contract, lookups, reinsert writes)
- the shared volume (file sizes and contents)
- the PDF inspector (signed / unsigned / unparseable documents)
"""
