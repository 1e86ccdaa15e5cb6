"""
Orchestration Layer - Workflow Coordination

This layer coordinates the coverage pipeline.
- Pure workflow coordination
- No tool, report or network details
- Composes acquire, execute, report and load operations
"""
