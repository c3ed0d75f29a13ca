from __future__ import annotations

import pytest
import yaml

from chartup.yaml_nodes import YamlMapping, YamlScalar, YamlSequence, compose_document, walk_entries


def test_compose_document_keeps_raw_text_and_lines() -> None:
    """
    标量保留原始文本，行号为 1 起始。
    """
    doc = compose_document("a: 1\nb:\n  - x\n  - y: true\n")
    assert isinstance(doc, YamlMapping)
    a = doc.get("a")
    assert isinstance(a, YamlScalar)
    assert (a.value, a.line) == ("1", 1)
    b = doc.get("b")
    assert isinstance(b, YamlSequence)
    assert isinstance(b.items[1], YamlMapping)
    assert b.items[1].scalar("y") == "true"


def test_compose_document_first_document_only_and_empty() -> None:
    """
    多文档时只取第一个文档；空文本返回 None。
    """
    doc = compose_document("name: first\n---\nname: second\n")
    assert isinstance(doc, YamlMapping)
    assert doc.scalar("name") == "first"
    assert compose_document("") is None


def test_compose_document_raises_on_syntax_error() -> None:
    """
    语法错误应抛出 yaml.YAMLError，由调用方决定如何处理。
    """
    with pytest.raises(yaml.YAMLError):
        compose_document("a: [1, 2\n")


def test_walk_entries_document_order() -> None:
    """
    遍历按文档顺序，先产出映射项本身再进入其子树。
    """
    doc = compose_document("x:\n  y: 1\nz:\n  - w: 2\n")
    keys = [key for _, key, _ in walk_entries(doc)]
    assert keys == ["x", "y", "z", "w"]


def test_scalar_default_for_missing_or_non_scalar() -> None:
    """
    缺失或非标量 key 返回默认值。
    """
    doc = compose_document("m:\n  k: v\n")
    assert isinstance(doc, YamlMapping)
    assert doc.scalar("missing", "d") == "d"
    assert doc.scalar("m") == ""


def test_compose_document_recursive_alias_raises_yaml_error() -> None:
    """
    自引用锚点会抛出 yaml.YAMLError，而不是无限递归。
    """
    with pytest.raises(yaml.YAMLError, match="recursive alias"):
        compose_document("a: &x\n  - *x\n")


def test_compose_document_shared_alias_is_expanded() -> None:
    """
    非循环的重复别名正常展开。
    """
    doc = compose_document("base: &b\n  image: nginx:1.25\nx: *b\ny: *b\n")
    assert isinstance(doc, YamlMapping)
    assert [key for _, key, _ in walk_entries(doc)] == ["base", "image", "x", "image", "y", "image"]
