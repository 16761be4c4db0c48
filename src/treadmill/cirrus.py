"""Reorder Cirrus CI tasks so the dependency's own tests run right after validation.

The CI file is read into a small model of top-level ``<name>_task:`` blocks
and their block-style ``depends_on:`` lists. Only dependency lists that
actually change are re-emitted; every other line is written back verbatim,
so the rewrite is idempotent and leaves unrelated formatting alone.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from treadmill.config import Context
from treadmill.errors import PreconditionError

logger = logging.getLogger(__name__)

_TASK_HEADER = re.compile(r"^([A-Za-z0-9_]+)_task:\s*(#.*)?$")
_TOP_LEVEL = re.compile(r"^[^\s#]")
_DEPENDS_ON = re.compile(r"^(\s+)depends_on:\s*(#.*)?$")
_DEPENDS_ITEM = re.compile(r"^(\s*-\s+)(['\"]?)([A-Za-z0-9_.-]+)\2\s*(#.*)?$")


@dataclass(slots=True)
class DependsOn:
    key_indent: str
    start: int
    end: int
    prefix: str
    items: list[str]
    item_lines: list[int]


@dataclass(slots=True)
class CiTask:
    name: str
    start: int
    end: int
    depends_on: DependsOn | None = None


def _indent_width(text: str) -> int:
    return len(text) - len(text.lstrip())


def _parse_depends(lines: list[str], key_index: int, key_indent: str) -> DependsOn:
    """Collect list items under ``depends_on:``; blank and comment lines are passed over."""
    items: list[str] = []
    item_lines: list[int] = []
    prefix = ""
    end = key_index + 1
    index = key_index + 1
    while index < len(lines):
        raw = lines[index].rstrip("\r\n")
        stripped = raw.strip()
        if not stripped or stripped.startswith("#"):
            index += 1
            continue
        match = _DEPENDS_ITEM.match(raw)
        if match is None or _indent_width(match.group(1)) < len(key_indent):
            break
        if not prefix:
            prefix = match.group(1)
        items.append(match.group(3))
        item_lines.append(index)
        index += 1
        end = index
    if not prefix:
        prefix = f"{key_indent}    - "
    return DependsOn(
        key_indent=key_indent,
        start=key_index + 1,
        end=end,
        prefix=prefix,
        items=items,
        item_lines=item_lines,
    )


def parse_tasks(lines: list[str]) -> list[CiTask]:
    tasks: list[CiTask] = []
    current: CiTask | None = None
    for index, line in enumerate(lines):
        raw = line.rstrip("\r\n")
        if _TOP_LEVEL.match(raw):
            if current is not None:
                current.end = index
                current = None
            header = _TASK_HEADER.match(raw)
            if header:
                current = CiTask(name=header.group(1), start=index, end=len(lines))
                tasks.append(current)
            continue
        if current is None:
            continue
        key = _DEPENDS_ON.match(raw)
        if key and current.depends_on is None:
            current.depends_on = _parse_depends(lines, index, key.group(1))
    return tasks


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    unique: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        unique.append(item)
    return unique


def _newline(line: str) -> str:
    return "\r\n" if line.endswith("\r\n") else "\n"


def _render_depends(lines: list[str], depends: DependsOn, wanted: list[str]) -> list[str]:
    """Re-emit the list region with ``wanted`` items; comments and blanks stay put."""
    anchor = depends.item_lines[0] if depends.item_lines else depends.start - 1
    newline = _newline(lines[anchor])
    item_lines = set(depends.item_lines)
    rendered: list[str] = []
    position = 0
    for index in range(depends.start, depends.end):
        if index not in item_lines:
            rendered.append(lines[index])
            continue
        if position < len(wanted):
            item = wanted[position]
            if depends.items[position] == item:
                rendered.append(lines[index])
            else:
                rendered.append(f"{depends.prefix}{item}{newline}")
        position += 1
    for item in wanted[position:]:
        rendered.append(f"{depends.prefix}{item}{newline}")
    return rendered


def _task_indent(lines: list[str], task: CiTask) -> str:
    for line in lines[task.start + 1:task.end]:
        raw = line.rstrip("\r\n")
        if raw.strip() and not raw.lstrip().startswith("#"):
            return raw[: _indent_width(raw)] or "    "
    return "    "


def _insert_depends(lines: list[str], task: CiTask, validate: str) -> list[str]:
    """A fresh ``depends_on:`` block right under the task header."""
    header = lines[task.start]
    newline = _newline(header) if header.endswith("\n") else "\n"
    indent = _task_indent(lines, task)
    block = [f"{indent}depends_on:{newline}", f"{indent}    - {validate}{newline}"]
    if not header.endswith("\n"):
        block[0] = newline + block[0]
    return block


def reorder_tasks(text: str, *, validate: str, dependency: str, aggregate: str) -> str:
    """Make ``dependency`` depend only on ``validate``; tasks that waited on
    ``validate`` wait on ``dependency`` instead. ``aggregate`` is left alone."""
    lines = text.splitlines(keepends=True)
    # start index -> (end index, replacement); end == start is a pure insertion
    rewrites: dict[int, tuple[int, list[str]]] = {}
    for task in parse_tasks(lines):
        depends = task.depends_on
        if task.name == dependency and depends is None:
            logger.info("%s_task has no depends_on; adding one", dependency)
            rewrites[task.start + 1] = (task.start + 1, _insert_depends(lines, task, validate))
            continue
        if depends is None:
            continue
        if task.name == dependency:
            wanted = [validate]
        elif task.name in (validate, aggregate) or validate not in depends.items:
            continue
        else:
            wanted = _dedupe([dependency if item == validate else item for item in depends.items])
        if wanted == depends.items:
            continue
        rewrites[depends.start] = (depends.end, _render_depends(lines, depends, wanted))

    out: list[str] = []
    index = 0
    while index <= len(lines):
        if index in rewrites:
            end, rendered = rewrites.pop(index)
            out.extend(rendered)
            if end > index:
                index = end
                continue
        if index == len(lines):
            break
        out.append(lines[index])
        index += 1
    return "".join(out)


def reorder_ci_tasks(ctx: Context) -> bool:
    """Rewrite the CI config in place. Returns True when the file changed."""
    settings = ctx.settings
    path = ctx.repo / settings.ci_config
    if not path.is_file():
        raise PreconditionError(f"CI config {settings.ci_config} not found")
    original = path.read_text(encoding="utf-8")
    updated = reorder_tasks(
        original,
        validate=settings.ci_validate_task,
        dependency=settings.ci_dependency_task,
        aggregate=settings.ci_aggregate_task,
    )
    if updated == original:
        logger.info("%s already runs %s first", settings.ci_config, settings.ci_dependency_task)
        return False
    if ctx.options.dry_run:
        logger.info("dry-run: not rewriting %s", settings.ci_config)
        return True
    path.write_text(updated, encoding="utf-8")
    return True
