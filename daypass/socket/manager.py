class SocketState:
    """Dashboard connections per staff user; one user may watch from several screens."""

    def __init__(self):
        self.user_sids: dict[str, set[str]] = {}
        self.sid_user: dict[str, str] = {}

    def bind(self, user_id: str, sid: str):
        self.user_sids.setdefault(user_id, set()).add(sid)
        self.sid_user[sid] = user_id

    def unbind_sid(self, sid: str):
        user_id = self.sid_user.pop(sid, None)
        if user_id and user_id in self.user_sids:
            self.user_sids[user_id].discard(sid)
            if not self.user_sids[user_id]:
                self.user_sids.pop(user_id, None)

    def connected_users(self) -> int:
        return len(self.user_sids)


socket_state = SocketState()
