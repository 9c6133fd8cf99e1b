"""Solidity to PROMELA translation engine.

Maps a parsed Solidity contract onto a PROMELA model for the SPIN model
checker:
  - Type mapping with bounded collections and fixed-width integers
  - Channel-based contract processes, one rendezvous pair per function
  - Synthesized agent processes modeling external callers
  - Block/tx/msg environment globals
  - An append-only ledger of every abstraction made
"""

__version__ = "0.1.0"
