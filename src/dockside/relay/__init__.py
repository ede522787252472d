"""WebSocket relays between a runtime CLI process and a browser session.

  _process  — scoped process ownership (kill + reap on every exit path)
  _session  — shared session lifecycle and idempotent teardown
  logs      — ``docker logs --follow`` relay, JSON line frames
  shell     — ``docker exec -i`` relay, raw binary frames
"""

from dockside.relay._process import owned_process, terminate_process
from dockside.relay._session import RelaySession, SessionOutcome, SessionState
from dockside.relay.logs import LogRelay
from dockside.relay.shell import ShellRelay

__all__ = [
    "LogRelay",
    "RelaySession",
    "SessionOutcome",
    "SessionState",
    "ShellRelay",
    "owned_process",
    "terminate_process",
]
