"""Core Application Layer: Orchestrates use cases and application logic.

Connects the domain layer with the infrastructure layer.
Contains application services and the command handler.
"""
