"""Taskforge-AI.

This package contains an autonomous coding-agent engine: it drives a
multi-turn conversation with a generative-language backend, lets the model
invoke local tools, and allows a task to spawn and later resume nested
sub-tasks (the "orchestrator" pattern).

High-level architecture
-----------------------

The codebase is organized around two major concepts:

- **The request loop**: one task's conversation engine. Each turn persists the
  outbound content, streams the reply, parses it incrementally into typed
  content blocks, executes at most one tool, and pushes the tool result as the
  next turn. Turns are explicit stack frames, not recursive calls.
- **The task stack**: a root task and its active descendant chain. Only the
  top task runs; every ancestor is paused until its child finishes. The stack
  can be rebuilt from persisted history records after a restart.

Core subpackages
----------------

- ``taskforge_ai.core``: configuration, logging and telemetry.
- ``taskforge_ai.agent_core``:

  - Content parsing and usage accounting.
  - The request loop and the task stack orchestrator.
  - Tools, modes, and the backend client abstraction.
  - Repository interfaces and SQL implementations for persistence.

Typical workflow
----------------

Most integrations should use ``taskforge_ai.agent_core.host.TaskProvider``:

1. Build a provider with ``taskforge_ai.agent_core.factory.build_provider``.
2. Start a task with ``create_task``.
3. Reopen any persisted task (root or subtask) with ``show_task_with_id``.
"""
