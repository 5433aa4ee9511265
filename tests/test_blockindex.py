import cbor2
import pytest

from sharechain.blockindex import BlockIndex, BlockMetadata
from sharechain.txstore import KeyValueStore

H5 = "0000000086704a35f17580d06f76d4c02d2b1f68774800675fb45f0411205bb5"
H6 = "0000000086704a35f17580d06f76d4c02d2b1f68774800675fb45f0411205bb6"
H7 = "0000000086704a35f17580d06f76d4c02d2b1f68774800675fb45f0411205bb7"
H8 = "0000000086704a35f17580d06f76d4c02d2b1f68774800675fb45f0411205bb8"
H9 = "0000000086704a35f17580d06f76d4c02d2b1f68774800675fb45f0411205bb9"
TXID1 = "d2528fc2d7a4f95ace97860f157c895b6098667df0e43912b027cfe58edf304e"
TXID2 = "0101010101010101010101010101010101010101010101010101010101010101"


@pytest.fixture
def db(tmp_path):
    store = KeyValueStore(tmp_path)
    yield store
    store.close()


@pytest.fixture
def index(db):
    return BlockIndex(db)


def _add(index, blockhash, prev, height):
    batch = index.db.batch()
    index.update_block_index(prev, blockhash, batch)
    index.set_height_to_blockhash(blockhash, height, batch)
    index.set_block_height_in_metadata(blockhash, height, batch)
    index.db.write(batch)


@pytest.fixture
def chain(index):
    # share1=H5; uncles H6, H7; share2=H8 with parent H5; share3=H9 with parent H8
    _add(index, H5, None, 0)
    _add(index, H6, H5, 1)
    _add(index, H7, H5, 1)
    _add(index, H8, H5, 1)
    _add(index, H9, H8, 2)
    return index


def test_children(chain):
    assert chain.get_children_blockhashes(H5) == [H6, H7, H8]
    assert chain.get_children_blockhashes(H8) == [H9]
    assert chain.get_children_blockhashes(H9) == []
    assert chain.get_children_blockhashes(H6) == []
    assert chain.get_children_blockhashes(H7) == []


def test_heights(chain):
    assert chain.get_blockhashes_for_height(0) == [H5]
    assert chain.get_blockhashes_for_height(1) == [H6, H7, H8]
    assert chain.get_blockhashes_for_height(2) == [H9]
    assert chain.get_blockhashes_for_height(3) == []


def test_set_height_does_not_duplicate(index):
    _add(index, H5, None, 0)
    batch = index.db.batch()
    index.set_height_to_blockhash(H5, 0, batch)
    assert len(batch) == 0
    assert index.get_blockhashes_for_height(0) == [H5]


def test_descendants(chain):
    assert chain.get_descendant_blockhashes(H5, H9, 10) == [H6, H7, H8, H9]
    assert chain.get_descendant_blockhashes(H8, H9, 10) == [H9]
    assert chain.get_descendant_blockhashes(H9, H9, 10) == []
    assert chain.get_descendant_blockhashes(H5, H9, 1) == [H6]
    assert chain.get_descendant_blockhashes(H5, H8, 10) == [H6, H7, H8]


def test_descendants_along_linear_chain(index):
    hashes = [
        "000000004ebadb55ee9096c9a2f8880e09da59c0d68b1c228da88e48844a1485",
        "0000000082b5015589a3fdf2d4baff403e6f0be035a5d9742c1cae6295464449",
        "000000006a625f06636b8bb6ac7b960a8d03705d1ace08b1a19da3fdcc99ddbd",
        "00000000839a8e6886ab5951d76f411475428afc90947ee320161bbf18eb6048",
        "000000000019d6689c085ae165831e934ff763ae46a2a6c172b3f1b60a8ce26f",
    ]
    prev = None
    for height, blockhash in enumerate(hashes):
        _add(index, blockhash, prev, height)
        prev = blockhash
    stop = index.get_blockhashes_for_height(2)[0]
    assert index.get_descendant_blockhashes(hashes[0], stop, 10) == hashes[1:3]
    missing_stop = "f" * 64
    assert index.get_descendant_blockhashes(hashes[2], missing_stop, 10) == hashes[3:]


def test_store_and_retrieve_txids(index):
    batch = index.db.batch()
    index.store_txids_to_block_index(H5, [TXID1, TXID2], batch)
    index.db.write(batch)
    assert index.get_txids_for_blockhash(H5) == [TXID1, TXID2]
    assert index.get_txids_for_blockhash(H6) == []


def test_block_status_operations(index):
    _add(index, H5, None, 0)
    assert index.get_block_metadata(H5) == BlockMetadata(height=0, is_valid=False, is_confirmed=False)

    index.set_block_valid(H5, True)
    assert index.get_block_metadata(H5) == BlockMetadata(0, True, False)

    index.set_block_confirmed(H5, True)
    assert index.get_block_metadata(H5) == BlockMetadata(0, True, True)

    index.set_block_valid(H5, False)
    assert index.get_block_metadata(H5) == BlockMetadata(0, False, True)

    index.set_block_confirmed(H5, False)
    assert index.get_block_metadata(H5) == BlockMetadata(0, False, False)


def test_block_status_for_nonexistent_block(index):
    assert index.get_block_metadata("f" * 64) is None


def test_multiple_block_status_updates(index):
    _add(index, H5, None, 0)
    _add(index, H6, H5, 1)
    index.set_block_valid(H5, True)
    index.set_block_confirmed(H6, True)
    m1 = index.get_block_metadata(H5)
    m2 = index.get_block_metadata(H6)
    assert (m1.is_valid, m1.is_confirmed) == (True, False)
    assert (m2.is_valid, m2.is_confirmed) == (False, True)

    index.set_block_valid(H5, False)
    index.set_block_confirmed(H6, False)
    assert index.get_block_metadata(H5).is_valid is False
    assert index.get_block_metadata(H6).is_confirmed is False


def test_set_and_get_block_height_in_metadata(index):
    _add(index, H5, None, 0)
    assert index.get_block_metadata(H5).height == 0

    index.set_block_height_in_metadata(H5, 42)
    assert index.get_block_metadata(H5).height == 42

    index.set_block_height_in_metadata(H5, None)
    assert index.get_block_metadata(H5).height is None

    batch = index.db.batch()
    index.set_block_height_in_metadata(H5, 100, batch)
    assert index.get_block_metadata(H5).height is None
    index.db.write(batch)
    assert index.get_block_metadata(H5).height == 100


def test_status_on_block_without_metadata_starts_from_defaults(index):
    index.set_block_confirmed(H7, True)
    assert index.get_block_metadata(H7) == BlockMetadata(height=None, is_valid=False, is_confirmed=True)


def test_corrupt_metadata_reads_as_none(index, db):
    db.put("block", bytes.fromhex(H5) + b"_md", cbor2.dumps("junk"))
    assert index.get_block_metadata(H5) is None


def test_update_without_parent_writes_nothing(index):
    batch = index.db.batch()
    index.update_block_index(None, H5, batch)
    assert len(batch) == 0


def test_invalid_blockhash_rejected(index):
    with pytest.raises(ValueError):
        index.get_children_blockhashes("not-a-hash")


def test_invalid_height_rejected(index):
    with pytest.raises(ValueError):
        index.get_blockhashes_for_height(-1)