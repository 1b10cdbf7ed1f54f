"""
Unit tests for the snapshot codec and store.
"""

import struct

import pytest

from parkingserver.lot import LotState, OccupantRecord, SnapshotError, SnapshotStore, VehicleCategory
from parkingserver.lot.snapshot import MAGIC, encode_state, decode_state


def sample_state() -> LotState:
    return LotState(
        capacity=10,
        small_rate=5.0,
        large_rate=8.5,
        active=[
            OccupantRecord("京A12345", VehicleCategory.SMALL, entry_time=1000.0),
            OccupantRecord("B2", VehicleCategory.LARGE, entry_time=1500.5),
        ],
        history=[
            OccupantRecord("C3", VehicleCategory.SMALL, entry_time=10.0, exit_time=3610.0, fee=5.0),
        ],
    )


class TestCodec:
    """Tests for encode_state / decode_state."""

    def test_round_trip(self):
        """Every field survives, including non-ASCII plates."""
        state = sample_state()
        decoded = decode_state(encode_state(state))

        assert decoded == state
        assert decoded.active[0].exit_time is None
        assert decoded.history[0].exit_time == 3610.0

    def test_header_layout(self):
        """Magic, version, capacity and occupied lead the file."""
        data = encode_state(sample_state())
        magic, version, capacity, occupied = struct.unpack_from("<4sHII", data)
        assert (magic, version, capacity, occupied) == (MAGIC, 1, 10, 2)

    def test_empty_lot(self):
        """A lot with no records encodes to just the header."""
        state = LotState(capacity=1, small_rate=1.0, large_rate=2.0)
        assert decode_state(encode_state(state)) == state

    def test_bad_magic(self):
        """Files from something else are rejected."""
        data = b"XXXX" + encode_state(sample_state())[4:]
        with pytest.raises(SnapshotError, match="magic"):
            decode_state(data)

    def test_bad_version(self):
        """Unknown versions are rejected."""
        data = bytearray(encode_state(sample_state()))
        struct.pack_into("<H", data, 4, 99)
        with pytest.raises(SnapshotError, match="version"):
            decode_state(bytes(data))

    @pytest.mark.parametrize("cut", [0, 3, 20, 40, -1])
    def test_truncated(self, cut):
        """Any truncation is a SnapshotError, never a struct.error."""
        data = encode_state(sample_state())
        with pytest.raises(SnapshotError):
            decode_state(data[:cut])

    def test_trailing_bytes(self):
        """Extra bytes after the records are rejected."""
        with pytest.raises(SnapshotError, match="trailing"):
            decode_state(encode_state(sample_state()) + b"\x00")

    def test_occupied_mismatch(self):
        """The header count must match the present records."""
        data = bytearray(encode_state(sample_state()))
        struct.pack_into("<I", data, 10, 1)
        with pytest.raises(SnapshotError, match="Occupied"):
            decode_state(bytes(data))

    def test_over_capacity(self):
        """More present vehicles than spaces is rejected."""
        state = sample_state()
        state.capacity = 1
        with pytest.raises(SnapshotError):
            decode_state(encode_state(state))

    def test_duplicate_present_plates(self):
        """Two present records with one plate is rejected."""
        state = sample_state()
        state.active.append(OccupantRecord("B2", VehicleCategory.SMALL, entry_time=2000.0))
        with pytest.raises(SnapshotError, match="Duplicate"):
            decode_state(encode_state(state))

    def test_unknown_category(self):
        """A category string that is not small/large is rejected."""
        state = LotState(capacity=2, small_rate=1.0, large_rate=1.0)
        data = bytearray(encode_state(state))
        struct.pack_into("<I", data, 10, 1)      # occupied
        struct.pack_into("<I", data, len(data) - 4, 1)  # count
        data += struct.pack("<H", 1) + b"A" + struct.pack("<H", 3) + b"bus"
        data += struct.pack("<ddd", 1.0, float("nan"), 0.0)
        with pytest.raises(SnapshotError):
            decode_state(bytes(data))

    def test_non_positive_rate(self):
        """Rates must be positive."""
        state = sample_state()
        state.small_rate = 0.0
        with pytest.raises(SnapshotError, match="rates"):
            decode_state(encode_state(state))


class TestSnapshotStore:
    """Tests for SnapshotStore file handling."""

    def test_missing_file(self, tmp_path):
        """No file means no snapshot."""
        assert SnapshotStore(tmp_path / "lot.dat").load() is None

    def test_save_and_load(self, tmp_path):
        """What is saved is loaded."""
        store = SnapshotStore(tmp_path / "lot.dat")
        store.save(sample_state())
        assert store.load() == sample_state()

    def test_save_leaves_no_temp_file(self, tmp_path):
        """The temp file is renamed over the target."""
        store = SnapshotStore(str(tmp_path / "lot.dat"))
        store.save(sample_state())

        assert sorted(p.name for p in tmp_path.iterdir()) == ["lot.dat"]

    def test_save_replaces_previous(self, tmp_path):
        """A second save overwrites the first."""
        store = SnapshotStore(tmp_path / "lot.dat")
        store.save(sample_state())
        empty = LotState(capacity=3, small_rate=1.0, large_rate=1.0)
        store.save(empty)

        assert store.load() == empty

    def test_corrupt_file(self, tmp_path):
        """Garbage on disk raises SnapshotError."""
        path = tmp_path / "lot.dat"
        path.write_bytes(b"not a snapshot")
        with pytest.raises(SnapshotError):
            SnapshotStore(path).load()

    def test_unreadable_path(self, tmp_path):
        """A directory where the file should be raises SnapshotError."""
        (tmp_path / "lot.dat").mkdir()
        with pytest.raises(SnapshotError):
            SnapshotStore(tmp_path / "lot.dat").load()
