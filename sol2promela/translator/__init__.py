"""Translation stages.

  - Type Mapper and typedef registry
  - Expression and statement translation
  - Process/Channel Generator
  - Agent Process Synthesizer
  - Global Environment Initializer
  - Abstraction Ledger and gas hint
"""
