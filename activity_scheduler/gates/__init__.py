"""
Gates Module

Stage ordering checks consulted before a task changes state.

Invariants:
- The first stage is never blocked
- A stage is open only when every earlier stage of the group is planned and done
- Document-scoped and project-scoped tasks are never compared with each other
"""

from .stage_gate import GateResult, StageGate, StageStatus

__all__ = ["GateResult", "StageGate", "StageStatus"]
