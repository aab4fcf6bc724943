"""Incremental index of the templates defined by each source file.

Every top-level ``{% block %}`` in a Jinja2 source file is one template. The
static markup inside a block can be patched into a running page; everything
else (expressions, statements, text outside the blocks) is structure, and a
change to it needs a full rebuild.
"""
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from jinja2 import Environment, TemplateSyntaxError, nodes

from ..core.errors import TemplateParseError

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class TemplateKey:
    path: str
    ordinal: int

@dataclass(frozen=True)
class TemplateRecord:
    key: TemplateKey
    name: str
    signature: tuple = field(repr=False)
    literals: Tuple[str, ...] = ()
    lineno: int = 0

    def to_payload(self) -> Dict:
        return {
            "path": self.key.path,
            "ordinal": self.key.ordinal,
            "name": self.name,
            "line": self.lineno,
            "literals": list(self.literals),
        }

@dataclass(frozen=True)
class FileEntry:
    skeleton: tuple = field(repr=False)
    records: Tuple[TemplateRecord, ...] = ()

@dataclass
class PatchSet:
    records: List[TemplateRecord]

@dataclass
class NeedsFullRebuild:
    reason: str

@dataclass
class UpdateError:
    reason: str

UpdateOutcome = Union[PatchSet, NeedsFullRebuild, UpdateError]

def _walk(node: nodes.Node, visit: Callable[[nodes.Node], Optional[tuple]]) -> tuple:
    """Reduce a Jinja2 AST to a hashable tuple; ``visit`` may short-circuit a node"""
    special = visit(node)
    if special is not None:
        return special
    parts = []
    for name in node.fields:
        value = getattr(node, name, None)
        if isinstance(value, nodes.Node):
            parts.append((name, _walk(value, visit)))
        elif isinstance(value, list):
            parts.append((name, tuple(
                _walk(item, visit) if isinstance(item, nodes.Node) else repr(item)
                for item in value
            )))
        else:
            parts.append((name, repr(value)))
    return (type(node).__name__, tuple(parts))

def _skeleton(template: nodes.Template, blocks: List[nodes.Block]) -> tuple:
    """Signature of the file outside its top-level blocks, collecting the blocks"""
    def visit(node):
        if isinstance(node, nodes.Block):
            blocks.append(node)
            return ('Block', node.name)
        if isinstance(node, nodes.TemplateData):
            return ('TemplateData', node.data)
        return None
    return _walk(template, visit)

def _shape(block: nodes.Block, literals: List[str]) -> tuple:
    """Signature of a block with its static markup lifted out into ``literals``"""
    def visit(node):
        if isinstance(node, nodes.TemplateData):
            literals.append(node.data)
            return ('TemplateData',)
        return None
    return _walk(block, visit)

class TemplateIndex:
    def __init__(self, extensions: Iterable[str] = (".j2",)):
        self.extensions = tuple(extensions)
        self._env = Environment()
        self._lock = threading.Lock()
        self._files: Dict[str, FileEntry] = {}
        self._pending: Dict[TemplateKey, TemplateRecord] = {}

    def is_template(self, path) -> bool:
        """Check whether a path is a source template by extension"""
        return Path(path).name.endswith(self.extensions)

    def scan(self, roots: Iterable[Path]) -> List[str]:
        """Parse every template below the roots and replace the whole map"""
        files: Dict[str, FileEntry] = {}
        errors: List[str] = []
        for root in roots:
            root = Path(root)
            if not root.is_dir():
                continue
            for path in sorted(root.rglob('*')):
                if not path.is_file() or path.name.startswith('.') or not self.is_template(path):
                    continue
                path = path.resolve()
                try:
                    files[str(path)] = self._parse_file(path)
                except TemplateParseError as e:
                    errors.append(str(e))
                except (OSError, UnicodeDecodeError) as e:
                    errors.append(f"Failed to read {path}: {e}")

        with self._lock:
            self._files = files
            self._pending.clear()
        logger.debug(f"Indexed {len(files)} template files")
        return errors

    def update(self, path) -> UpdateOutcome:
        """Re-parse one file and diff it against the stored templates"""
        path = Path(path).resolve()
        try:
            parsed = self._parse_file(path)
        except FileNotFoundError:
            return NeedsFullRebuild(f"{path} was removed")
        except TemplateParseError as e:
            return UpdateError(str(e))
        except (OSError, UnicodeDecodeError) as e:
            return UpdateError(f"Failed to read {path}: {e}")

        key = str(path)
        with self._lock:
            current = self._files.get(key)
            if current is None:
                return NeedsFullRebuild(f"{path} is not indexed yet")
            reason = self._structural_change(current, parsed)
            if reason:
                return NeedsFullRebuild(f"{path}: {reason}")

            changed = [
                new for old, new in zip(current.records, parsed.records)
                if old.literals != new.literals
            ]
            self._files[key] = parsed
            for record in changed:
                self._pending.pop(record.key, None)
                self._pending[record.key] = record
        return PatchSet(changed)

    def templates(self, path) -> List[TemplateRecord]:
        with self._lock:
            entry = self._files.get(str(Path(path).resolve()))
            return list(entry.records) if entry else []

    def snapshot(self) -> Dict[str, List[TemplateRecord]]:
        """Consistent copy of the whole file map"""
        with self._lock:
            return {path: list(entry.records) for path, entry in self._files.items()}

    def pending_patches(self) -> List[TemplateRecord]:
        """Templates patched since the last scan, oldest first"""
        with self._lock:
            return list(self._pending.values())

    def _parse_file(self, path: Path) -> FileEntry:
        source = path.read_text(encoding='utf-8')
        try:
            template = self._env.parse(source, name=path.name, filename=str(path))
        except TemplateSyntaxError as e:
            raise TemplateParseError(str(path), e.message or str(e), e.lineno) from e

        blocks: List[nodes.Block] = []
        skeleton = _skeleton(template, blocks)
        records = []
        for ordinal, block in enumerate(blocks):
            literals: List[str] = []
            signature = _shape(block, literals)
            records.append(TemplateRecord(
                key=TemplateKey(str(path), ordinal),
                name=block.name,
                signature=signature,
                literals=tuple(literals),
                lineno=block.lineno
            ))
        return FileEntry(skeleton=skeleton, records=tuple(records))

    @staticmethod
    def _structural_change(current: FileEntry, parsed: FileEntry) -> Optional[str]:
        if len(current.records) != len(parsed.records):
            return (f"template count changed from {len(current.records)} "
                    f"to {len(parsed.records)}")
        if current.skeleton != parsed.skeleton:
            return "markup outside the templates changed"
        for old, new in zip(current.records, parsed.records):
            if old.name != new.name or old.signature != new.signature:
                return f"template '{old.name}' changed structure"
        return None
