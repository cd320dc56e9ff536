import pytest

from promclient.desc import Desc, LabelPair, build_fq_name, new_invalid_desc


def test_invalid_label_value_is_recorded():
    desc = Desc("sample_label", "sample label", None, {"a": "\udcff"})
    assert isinstance(desc.error, ValueError)
    assert "not valid UTF-8" in str(desc.error)


def test_valid_desc_has_no_error():
    desc = Desc("sample_label", "sample label", ["x"], {"a": "1"})
    assert desc.error is None


def test_str_matches_expected_format():
    desc = Desc("test_name", "test help", None, {"b": "2", "a": "1"})
    assert str(desc) == (
        'Desc{fqName: "test_name", help: "test help", '
        'constLabels: {a="1",b="2"}, variableLabels: []}'
    )


def test_str_lists_variable_labels():
    desc = Desc("m", "h", ["code", "method"])
    assert str(desc).endswith("variableLabels: [code method]}")


def test_const_label_pairs_sorted():
    desc = Desc("m", "h", None, {"z": "1", "a": "2", "m": "3"})
    assert desc.const_label_pairs == (
        LabelPair("a", "2"),
        LabelPair("m", "3"),
        LabelPair("z", "1"),
    )


@pytest.mark.parametrize("name", ["", "1abc", "with-dash", "sp ace"])
def test_invalid_metric_name(name):
    desc = Desc(name, "help")
    assert "is not a valid metric name" in str(desc.error)


def test_colons_allowed_in_metric_name():
    assert Desc("job:rate:sum", "h").error is None


@pytest.mark.parametrize("label", ["1a", "a-b", "__reserved", "a:b"])
def test_invalid_const_label_name(label):
    desc = Desc("m", "h", None, {label: "v"})
    assert "is not a valid label name" in str(desc.error)


@pytest.mark.parametrize("label", ["1a", "__reserved"])
def test_invalid_variable_label_name(label):
    desc = Desc("m", "h", [label])
    assert "is not a valid label name" in str(desc.error)


def test_duplicate_between_const_and_variable():
    desc = Desc("m", "h", ["a"], {"a": "x"})
    assert str(desc.error) == "duplicate label names"


def test_duplicate_variable_labels():
    desc = Desc("m", "h", ["a", "a"])
    assert str(desc.error) == "duplicate label names"


def test_same_name_and_const_values_share_id():
    first = Desc("g1", "help g1", None, {"a": "1"})
    second = Desc("g1", "other help", ["x"], {"a": "1"})
    assert first.id == second.id


def test_const_values_change_id():
    assert Desc("m", "h", None, {"a": "1"}).id != Desc("m", "h", None, {"a": "2"}).id


def test_dim_hash_ignores_order_of_variable_labels():
    assert Desc("m", "h", ["a", "b"]).dim_hash == Desc("m", "h", ["b", "a"]).dim_hash


def test_dim_hash_depends_on_help():
    assert Desc("m", "one").dim_hash != Desc("m", "two").dim_hash


def test_dim_hash_separates_const_from_variable():
    const = Desc("m", "h", None, {"a": "1"})
    variable = Desc("m", "h", ["a"])
    assert const.dim_hash != variable.dim_hash


def test_new_invalid_desc_carries_error():
    err = RuntimeError("cannot describe")
    desc = new_invalid_desc(err)
    assert desc.error is err


@pytest.mark.parametrize(
    "namespace, subsystem, name, expected",
    [
        ("ns", "sub", "name", "ns_sub_name"),
        ("", "", "name", "name"),
        ("ns", "", "name", "ns_name"),
        ("", "sub", "name", "sub_name"),
        ("ns", "sub", "", ""),
    ],
)
def test_build_fq_name(namespace, subsystem, name, expected):
    assert build_fq_name(namespace, subsystem, name) == expected