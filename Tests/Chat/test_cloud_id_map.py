# test_cloud_id_map.py
#
# Property-based tests for local id derivation and the local <-> server id map.
#
# Imports
import uuid
import pytest
#
# Third-Party Imports
from hypothesis import given, strategies as st, settings
from hypothesis.stateful import RuleBasedStateMachine, rule, invariant, Bundle
#
# Local Imports
from thinktank_client.Chat.cloud_id_map import CloudIdMap, derive_local_id
#
########################################################################################################################
#
# Functions:

settings.register_profile("id_map", max_examples=200, deadline=None)
settings.load_profile("id_map")

# Server ids look like "1738151234567_k3j9x2a", but any string must work
st_server_id = st.one_of(
    st.builds(lambda ms, suffix: f"{ms}_{suffix}",
              st.integers(min_value=0, max_value=10 ** 13),
              st.text(alphabet="0123456789abcdefghijklmnopqrstuvwxyz", min_size=7, max_size=7)),
    st.text(max_size=80),
)


@given(remote_id=st_server_id)
def test_derivation_is_deterministic(remote_id):
    assert derive_local_id(remote_id) == derive_local_id(remote_id)


@given(remote_id=st_server_id)
def test_derived_id_is_version_4_rfc_4122(remote_id):
    local_id = derive_local_id(remote_id)
    assert local_id.version == 4
    assert local_id.variant == uuid.RFC_4122


def test_derivation_folds_bytes_by_xor():
    # 17 bytes: the 17th byte folds back onto position 0
    remote_id = "A" * 16 + "B"
    expected = bytearray(b"A" * 16)
    expected[0] ^= ord("B")
    expected[6] = (expected[6] & 0x0F) | 0x40
    expected[8] = (expected[8] & 0x3F) | 0x80
    assert derive_local_id(remote_id) == uuid.UUID(bytes=bytes(expected))


def test_derivation_of_empty_string():
    assert derive_local_id("") == uuid.UUID("00000000-0000-4000-8000-000000000000")


def test_derivation_uses_utf8_bytes():
    assert derive_local_id("é") != derive_local_id("e")


def test_distinct_server_ids_usually_differ():
    ids = [f"1738151234567_{n:07d}" for n in range(50)]
    assert len({derive_local_id(i) for i in ids}) == len(ids)


# --- CloudIdMap ---

def test_register_and_lookup():
    id_map = CloudIdMap()
    local_id = uuid.uuid4()
    id_map.register(local_id, "srv-1")

    assert id_map.remote_id_for(local_id) == "srv-1"
    assert id_map.local_id_for("srv-1") == local_id
    assert local_id in id_map
    assert len(id_map) == 1
    assert list(id_map) == [local_id]


def test_register_repoints_local_id():
    id_map = CloudIdMap()
    local_id = uuid.uuid4()
    id_map.register(local_id, "srv-1")
    id_map.register(local_id, "srv-2")

    assert id_map.remote_id_for(local_id) == "srv-2"
    assert id_map.local_id_for("srv-1") is None
    assert len(id_map) == 1


def test_conditional_remove_only_drops_matching_entry():
    id_map = CloudIdMap()
    local_id = uuid.uuid4()
    id_map.register(local_id, "srv-2")

    assert id_map.remove(local_id, expected_remote_id="srv-1") is False
    assert id_map.remote_id_for(local_id) == "srv-2"
    assert id_map.remove(local_id, expected_remote_id="srv-2") is True
    assert id_map.remote_id_for(local_id) is None
    assert id_map.remove(local_id) is False


def test_replace_all():
    id_map = CloudIdMap()
    id_map.register(uuid.uuid4(), "stale")
    pairs = [(derive_local_id(r), r) for r in ("a", "b")]

    id_map.replace_all(pairs)

    assert sorted(id_map.items(), key=lambda p: p[1]) == pairs
    assert id_map.local_id_for("stale") is None


class CloudIdMapMachine(RuleBasedStateMachine):
    """Forward and reverse lookups stay consistent under any sequence of operations."""

    local_ids = Bundle("local_ids")

    def __init__(self):
        super().__init__()
        self.id_map = CloudIdMap()
        self.model = {}

    @rule(target=local_ids)
    def new_local_id(self):
        return uuid.uuid4()

    @rule(local_id=local_ids, remote_id=st.sampled_from(["r1", "r2", "r3", "r4"]))
    def register(self, local_id, remote_id):
        self.id_map.register(local_id, remote_id)
        self.model = {k: v for k, v in self.model.items() if v != remote_id}
        self.model[local_id] = remote_id

    @rule(local_id=local_ids, expected=st.one_of(st.none(), st.sampled_from(["r1", "r2", "r3", "r4"])))
    def remove(self, local_id, expected):
        removed = self.id_map.remove(local_id, expected_remote_id=expected)
        should_remove = local_id in self.model and (expected is None or self.model[local_id] == expected)
        assert removed == should_remove
        if should_remove:
            del self.model[local_id]

    @invariant()
    def matches_model(self):
        assert dict(self.id_map.items()) == self.model
        for local_id, remote_id in self.model.items():
            assert self.id_map.local_id_for(remote_id) == local_id


TestCloudIdMapStateful = CloudIdMapMachine.TestCase

#
# End of test_cloud_id_map.py
########################################################################################################################
