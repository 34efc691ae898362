"""Agent — Orchestrate a conflict resolution run

Components:
    engine.py: ConflictResolutionEngine, apply/resolve result types
    ai_prompt.py: Prompts and response validation for the reasoning service
"""
