import json
import random

import pytest

from tpn_connect.directory import EndpointDirectory
from tpn_connect.errors import DirectoryUnavailable, ValidatorNotFound
from tpn_connect.models import Validator


def _write(tmp_path, data):
    p = tmp_path / "validators.json"
    p.write_text(data if isinstance(data, str) else json.dumps(data))
    return str(p)


def test_load_original_directory_format(tmp_path):
    path = _write(tmp_path, [
        {"UID": 0, "Axon": "10.0.0.1:3000", "Location": "Amsterdam"},
        {"UID": "4", "Axon": "10.0.0.4:3000", "Location": "Frankfurt"},
    ])
    d = EndpointDirectory.load(path)
    assert len(d) == 2
    assert d.find_by_id("0") == Validator("0", "10.0.0.1:3000", "Amsterdam")
    assert d.find_by_id("4").location_label == "Frankfurt"


def test_load_lowercase_keys(tmp_path):
    d = EndpointDirectory.load(_write(tmp_path, [{"id": "a", "endpoint": "h:1", "location": "X"}]))
    assert d.list_validators() == [Validator("a", "h:1", "X")]


@pytest.mark.parametrize(
    "content",
    ["not json", json.dumps({"UID": 1}), "[]", json.dumps([{"UID": 1}]),
     json.dumps([{"UID": 1, "Axon": "a"}, {"UID": 1, "Axon": "b"}]),
     json.dumps(["10.0.0.1:3000"]), json.dumps([1, 2]), json.dumps([None])],
)
def test_load_failures(tmp_path, content):
    with pytest.raises(DirectoryUnavailable):
        EndpointDirectory.load(_write(tmp_path, content))


def test_missing_file(tmp_path):
    with pytest.raises(DirectoryUnavailable):
        EndpointDirectory.load(str(tmp_path / "nope.json"))


def test_find_unknown_id():
    d = EndpointDirectory([Validator("1", "h:1")])
    with pytest.raises(ValidatorNotFound) as exc:
        d.find_by_id("2")
    assert exc.value.validator_id == "2"


def test_pick_random_covers_whole_list():
    vs = [Validator(str(i), f"h:{i}") for i in range(4)]
    d = EndpointDirectory(vs, rng=random.Random(7))
    picks = {d.pick_random() for _ in range(200)}
    assert picks == set(vs)


def test_list_is_a_copy():
    d = EndpointDirectory([Validator("1", "h:1")])
    d.list_validators().clear()
    assert len(d) == 1
