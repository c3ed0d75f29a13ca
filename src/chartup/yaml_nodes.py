from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Union

import yaml
from yaml.composer import ComposerError


@dataclass(frozen=True, slots=True)
class YamlScalar:
    """
    标量节点：保留原始文本（不做类型转换）与 1 起始的行号。
    """

    value: str
    line: int


@dataclass(frozen=True, slots=True)
class YamlSequence:
    """
    序列节点。
    """

    items: tuple["YamlNode", ...]


@dataclass(frozen=True, slots=True)
class YamlMapping:
    """
    映射节点：按文档顺序保存 (key, value)；非标量 key 记为空字符串。
    """

    items: tuple[tuple[str, "YamlNode"], ...]
    line: int = 0

    def get(self, key: str) -> YamlNode | None:
        """
        返回第一个同名 key 对应的节点。
        """
        for k, v in self.items:
            if k == key:
                return v
        return None

    def scalar(self, key: str, default: str = "") -> str:
        """
        返回 key 对应的标量文本；缺失或非标量时返回 default。
        """
        node = self.get(key)
        if isinstance(node, YamlScalar):
            return node.value
        return default


YamlNode = Union[YamlMapping, YamlSequence, YamlScalar]


def _convert(node: yaml.Node, active: set[int]) -> YamlNode:
    """
    将 PyYAML 的 compose 节点转换为 YamlNode。

    active 保存当前路径上的节点 id；锚点引用自身（循环别名）时抛出 ComposerError。
    """
    line = node.start_mark.line + 1
    if isinstance(node, yaml.ScalarNode):
        return YamlScalar(value=str(node.value), line=line)
    if id(node) in active:
        raise ComposerError(None, None, "found recursive alias", node.start_mark)
    active.add(id(node))
    try:
        if isinstance(node, yaml.MappingNode):
            items = tuple(
                (k.value if isinstance(k, yaml.ScalarNode) else "", _convert(v, active)) for k, v in node.value
            )
            return YamlMapping(items=items, line=line)
        return YamlSequence(items=tuple(_convert(n, active) for n in node.value))
    finally:
        active.discard(id(node))


def compose_document(text: str) -> YamlNode | None:
    """
    解析 YAML 文本的第一个文档；空文档返回 None，语法错误抛出 yaml.YAMLError。
    """
    for node in yaml.compose_all(text, Loader=yaml.SafeLoader):
        if node is None:
            return None
        return _convert(node, set())
    return None


def walk_entries(node: YamlNode | None) -> Iterator[tuple[YamlMapping, str, YamlNode]]:
    """
    按文档顺序深度优先遍历所有映射项，产出 (所在映射, key, value)。

    每一项先产出自身，再进入其 value 子树。
    """
    if isinstance(node, YamlMapping):
        for key, value in node.items:
            yield node, key, value
            yield from walk_entries(value)
    elif isinstance(node, YamlSequence):
        for item in node.items:
            yield from walk_entries(item)
