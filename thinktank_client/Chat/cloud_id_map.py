# cloud_id_map.py
# Description: Mapping between local conversation UUIDs and server conversation ids.
#
# Imports
from typing import Dict, Iterator, Optional, Tuple
from uuid import UUID
#
########################################################################################################################
#
# Functions:

def derive_local_id(remote_id: str) -> UUID:
    """
    Deterministic local UUID for a server id.

    The UTF-8 bytes are XOR-folded into 16 bytes, then the version nibble is set to 4
    and the variant bits to RFC 4122, so reloading the same listing always yields the
    same local ids.
    """
    folded = bytearray(16)
    for i, byte in enumerate(remote_id.encode("utf-8")):
        folded[i % 16] ^= byte
    folded[6] = (folded[6] & 0x0F) | 0x40
    folded[8] = (folded[8] & 0x3F) | 0x80
    return UUID(bytes=bytes(folded))


class CloudIdMap:
    """Local UUID -> server id, with reverse lookup."""

    def __init__(self):
        self._remote_by_local: Dict[UUID, str] = {}
        self._local_by_remote: Dict[str, UUID] = {}

    def register(self, local_id: UUID, remote_id: str) -> None:
        previous_remote = self._remote_by_local.get(local_id)
        if previous_remote is not None and self._local_by_remote.get(previous_remote) == local_id:
            del self._local_by_remote[previous_remote]
        previous_local = self._local_by_remote.get(remote_id)
        if previous_local is not None and previous_local != local_id:
            self._remote_by_local.pop(previous_local, None)
        self._remote_by_local[local_id] = remote_id
        self._local_by_remote[remote_id] = local_id

    def remote_id_for(self, local_id: UUID) -> Optional[str]:
        return self._remote_by_local.get(local_id)

    def local_id_for(self, remote_id: str) -> Optional[UUID]:
        return self._local_by_remote.get(remote_id)

    def remove(self, local_id: UUID, expected_remote_id: Optional[str] = None) -> bool:
        """
        Drop the entry for `local_id`.

        With `expected_remote_id`, the entry is only dropped while it still points at that
        server id. Returns whether anything was removed.
        """
        remote_id = self._remote_by_local.get(local_id)
        if remote_id is None:
            return False
        if expected_remote_id is not None and remote_id != expected_remote_id:
            return False
        del self._remote_by_local[local_id]
        if self._local_by_remote.get(remote_id) == local_id:
            del self._local_by_remote[remote_id]
        return True

    def replace_all(self, pairs) -> None:
        self.clear()
        for local_id, remote_id in pairs:
            self.register(local_id, remote_id)

    def clear(self) -> None:
        self._remote_by_local.clear()
        self._local_by_remote.clear()

    def items(self) -> Iterator[Tuple[UUID, str]]:
        return iter(list(self._remote_by_local.items()))

    def __contains__(self, local_id) -> bool:
        return local_id in self._remote_by_local

    def __len__(self) -> int:
        return len(self._remote_by_local)

    def __iter__(self) -> Iterator[UUID]:
        return iter(list(self._remote_by_local))

#
# End of cloud_id_map.py
########################################################################################################################
