"""
Execution Layer - Running the Coverage Tool

Builds tarpaulin command lines and runs them as blocking subprocesses.
- Command builders are pure functions
- Credentials reach the tool through its environment, never argv
"""
