"""
Feature modules for the Planora auth client.

Each module is self-contained with its own:
- interfaces.py: Protocol definitions for the module's public API
- models.py: Pydantic models for data transfer
- service.py / repository.py: Implementations (Supabase-backed and in-memory)
- exceptions.py: Module-specific exceptions, where a module has any

Modules communicate through interfaces, not concrete implementations.
Leaf modules (identity, profiles, verification, sessions, onboarding)
never import from auth; auth wires them together.
"""
