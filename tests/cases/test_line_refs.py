"""Tests for the FILE:REFS selector grammar."""

import pytest

from git_lines import FileLineRefs, LineRef, RefSyntaxError, parse_file_refs, selection_predicates


def test_single_addition():
    refs = parse_file_refs("flake.nix:137")
    assert refs == FileLineRefs("flake.nix", [LineRef("+", 137, 137)])


def test_single_deletion():
    refs = parse_file_refs("flake.nix:-15")
    assert refs.refs == [LineRef("-", 15, 15)]
    assert refs.refs[0].is_deletion


def test_ranges():
    refs = parse_file_refs("file.nix:10..15,-20..-22")
    assert refs.refs == [
        LineRef("+", 10, 15, is_range=True),
        LineRef("-", 20, 22, is_range=True),
    ]


def test_mixed_list_keeps_order():
    refs = parse_file_refs("default.nix:-10,12,-15..-17,20..22")
    assert [str(r) for r in refs.refs] == ["-10", "12", "-15..-17", "20..22"]


def test_whitespace_and_empty_items_are_ignored():
    refs = parse_file_refs(" file.nix : 1 , ,-2,")
    assert refs == FileLineRefs("file.nix", [LineRef("+", 1, 1), LineRef("-", 2, 2)])


def test_only_first_colon_splits():
    with pytest.raises(RefSyntaxError, match="Invalid line number 'colon.txt:3'"):
        parse_file_refs("with:colon.txt:3")


def test_single_line_range_is_allowed():
    assert parse_file_refs("f:5..5").refs == [LineRef("+", 5, 5, is_range=True)]


def test_str_roundtrip():
    text = "src/main.rs:-3..-4,7,9..10,-12"
    assert str(parse_file_refs(text)) == text


@pytest.mark.parametrize("text,message", [
    ("file.nix", "Invalid format 'file.nix': expected 'file:refs'"),
    (":10", "Invalid format ':10': file name cannot be empty"),
    ("file.nix:", "No line references provided"),
    ("file.nix: , ", "No line references provided"),
    ("file.nix:abc", "Invalid line number 'abc'"),
    ("file.nix:0", "Invalid line number '0'"),
    ("file.nix:-0", "Invalid line number '-0'"),
    ("file.nix:+5", "Invalid line number '+5'"),
    ("file.nix:15..10", "Invalid range 15..10: start must be <= end"),
    ("file.nix:-15..-10", "Invalid range 15..10: start must be <= end"),
    ("file.nix:10..0", "Invalid line number '0'"),
    ("file.nix:..5", "Invalid line number ''"),
    ("file.nix:5..", "Invalid line number ''"),
    ("file.nix:-3..5", "Delete reference must start with '-', got '5'"),
    ("file.nix:3..-5", "Invalid line number '-5'"),
])
def test_invalid_refs(text, message):
    with pytest.raises(RefSyntaxError) as exc_info:
        parse_file_refs(text)
    assert str(exc_info.value) == message


def test_ref_syntax_error_is_value_error():
    with pytest.raises(ValueError):
        parse_file_refs("nope")


def test_keeps_old_and_new_use_separate_numbering():
    refs = parse_file_refs("f:-10,10,12..14")
    assert refs.keeps_old(10)
    assert not refs.keeps_old(12)
    assert refs.keeps_new(10)
    assert refs.keeps_new(13)
    assert not refs.keeps_new(11)
    assert not refs.keeps_new(15)


def test_selection_predicates_route_by_path():
    keep_old, keep_new = selection_predicates([
        parse_file_refs("a.txt:3"),
        parse_file_refs("./sub/b.txt:-4"),
        parse_file_refs("a.txt:7"),
    ])
    assert keep_new("a.txt", 3)
    assert keep_new("a.txt", 7)
    assert not keep_new("a.txt", 4)
    assert keep_old("sub/b.txt", 4)
    assert not keep_new("sub/b.txt", 4)
    assert not keep_old("other.txt", 4)
