"""Project configuration: locate tsconfig.json and load the program's files.

This is the only stage that can abort an analysis: a missing or unparsable
config raises ProjectConfigError before any file is visited.

Patterns honoured:
- config discovery walks up from the base path (like `tsc -p`)
- `extends` with a relative path or a package under node_modules
- `files`, `include` (default `**/*`), `exclude`
  (default node_modules, bower_components, jspm_packages, outDir)
- `compilerOptions.allowJs` / `checkJs` add JavaScript sources
"""
import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import structlog

from ..errors import ProjectConfigError
from .parser import LanguageParser
from .syntax import SourceFile

logger = structlog.get_logger(__name__)

TS_EXTENSIONS = ('.ts', '.tsx', '.mts', '.cts')
JS_EXTENSIONS = ('.js', '.jsx', '.mjs', '.cjs')

# Never matched by wildcards unless named explicitly
IMPLICIT_EXCLUDES = {'node_modules', 'bower_components', 'jspm_packages'}

# Strings are kept intact; comments are dropped
_JSONC_TOKENS = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMAS = re.compile(r'("(?:\\.|[^"\\])*")|,(\s*[}\]])')


def parse_jsonc(text: str) -> Any:
    """Parse JSON with comments and trailing commas, as tsconfig allows.

    Raises:
        json.JSONDecodeError: If the remaining text is not valid JSON
    """
    without_comments = _JSONC_TOKENS.sub(lambda m: m.group(1) or '', text)
    cleaned = _TRAILING_COMMAS.sub(lambda m: m.group(1) or m.group(2), without_comments)
    return json.loads(cleaned)


def find_config_file(base_path: Path, config_name: str = 'tsconfig.json') -> Optional[Path]:
    """Search `base_path` and its ancestors for `config_name`.

    Args:
        base_path: Directory to start from
        config_name: File name, or a path relative to each searched directory

    Returns:
        Path of the config file, or None if not found
    """
    candidate = Path(config_name)
    if candidate.is_absolute():
        return candidate if candidate.is_file() else None

    directory = Path(base_path).resolve()
    for current in [directory, *directory.parents]:
        path = current / config_name
        if path.is_file():
            return path
    return None


@dataclass
class ProjectConfig:
    """Resolved compiler configuration of the analysed project."""
    config_path: Path
    files: List[str] = field(default_factory=list)
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    compiler_options: Dict[str, Any] = field(default_factory=dict)

    @property
    def root(self) -> Path:
        return self.config_path.parent

    @property
    def allow_js(self) -> bool:
        return bool(self.compiler_options.get('allowJs') or self.compiler_options.get('checkJs'))

    @classmethod
    def load(cls, base_path: str | Path, config_name: str = 'tsconfig.json') -> 'ProjectConfig':
        """Locate and parse the project's tsconfig.

        Raises:
            ProjectConfigError: If the config cannot be found or parsed
        """
        config_path = find_config_file(Path(base_path), config_name)
        if config_path is None:
            raise ProjectConfigError.not_found(config_name, base_path)
        return cls._from_path(config_path, seen=set())

    @classmethod
    def _from_path(cls, config_path: Path, seen: Set[Path]) -> 'ProjectConfig':
        config_path = config_path.resolve()
        if config_path in seen:
            raise ProjectConfigError.parse_error(config_path, "circular 'extends'")
        seen.add(config_path)

        try:
            data = parse_jsonc(config_path.read_text(encoding='utf-8'))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProjectConfigError.parse_error(config_path, str(e)) from e
        if not isinstance(data, dict):
            raise ProjectConfigError.parse_error(config_path, "top-level value must be an object")

        config = cls(
            config_path=config_path,
            files=list(data.get('files') or []),
            include=data.get('include'),
            exclude=data.get('exclude'),
            compiler_options=dict(data.get('compilerOptions') or {}),
        )

        extends = data.get('extends')
        for parent_ref in ([extends] if isinstance(extends, str) else extends or []):
            parent_path = cls._resolve_extends(config_path.parent, parent_ref)
            config._inherit(cls._from_path(parent_path, seen))

        return config

    @staticmethod
    def _resolve_extends(directory: Path, reference: str) -> Path:
        if reference.startswith('.') or Path(reference).is_absolute():
            candidates = [directory / reference]
        else:
            candidates = [parent / 'node_modules' / reference
                          for parent in [directory, *directory.parents]]

        for candidate in candidates:
            for path in (candidate, candidate.with_name(candidate.name + '.json'),
                         candidate / 'tsconfig.json'):
                if path.is_file():
                    return path
        raise ProjectConfigError.parse_error(directory, f"cannot resolve extends '{reference}'")

    def _inherit(self, parent: 'ProjectConfig'):
        """Fill unset values from an extended config (this config wins).

        Paths in the parent are relative to the parent's directory.
        """
        def rebase(items: List[str]) -> List[str]:
            return [p if Path(p).is_absolute() else os.path.relpath(parent.root / p, self.root)
                    for p in items]

        if not self.files and parent.files:
            self.files = rebase(parent.files)
        if self.include is None and parent.include is not None:
            self.include = rebase(parent.include)
        if self.exclude is None and parent.exclude is not None:
            self.exclude = rebase(parent.exclude)
        self.compiler_options = {**parent.compiler_options, **self.compiler_options}

    # File list -----------------------------------------------------------

    def extensions(self) -> tuple:
        return TS_EXTENSIONS + JS_EXTENSIONS if self.allow_js else TS_EXTENSIONS

    def source_paths(self) -> List[Path]:
        """All source files of the program, sorted, declaration files included."""
        root = self.root
        found: Set[Path] = set()

        for name in self.files:
            path = (root / name).resolve()
            if path.is_file():
                found.add(path)

        include = self.include if self.include is not None else ([] if self.files else ['**/*'])
        patterns = [self._directory_pattern(p) for p in include]
        include_res = [_glob_regex(p) for p in patterns]
        exclude_res = [_glob_regex(p) for p in self._exclude_patterns()]
        extensions = self.extensions()

        for base in _walk_roots(root, patterns):
            for directory, dirnames, filenames in os.walk(base):
                # Prune package folders and dot-directories before descending
                dirnames[:] = [d for d in dirnames
                               if d not in IMPLICIT_EXCLUDES and not d.startswith('.')]
                for filename in filenames:
                    if not filename.endswith(extensions):
                        continue
                    path = Path(directory, filename)
                    # Patterns may reach outside the config's directory (`../shared`)
                    relative = Path(os.path.relpath(path, root)).as_posix()
                    if not any(r.fullmatch(relative) for r in include_res):
                        continue
                    if _matches_or_below(relative, exclude_res):
                        continue
                    found.add(path.resolve())

        return sorted(found)

    def _directory_pattern(self, pattern: str) -> str:
        pattern = _normalize_pattern(pattern)
        if not any(ch in pattern for ch in '*?') and (self.root / pattern).is_dir():
            # A directory means everything below it
            return pattern + '/**/*'
        return pattern

    def _exclude_patterns(self) -> List[str]:
        if self.exclude is not None:
            return [_normalize_pattern(p) for p in self.exclude]
        patterns = sorted(IMPLICIT_EXCLUDES)
        if self.compiler_options.get('outDir'):
            patterns.append(_normalize_pattern(self.compiler_options['outDir']))
        return patterns


def _normalize_pattern(pattern: str) -> str:
    pattern = pattern.replace('\\', '/')
    while pattern.startswith('./'):
        pattern = pattern[2:]
    return pattern.rstrip('/')


def _glob_regex(pattern: str) -> re.Pattern:
    """Translate a tsconfig glob (`**`, `*`, `?`) into a regex over posix paths."""
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith('**/', i):
            parts.append('(?:[^/]+/)*')
            i += 3
        elif pattern.startswith('**', i):
            parts.append('.*')
            i += 2
        elif pattern[i] == '*':
            parts.append('[^/]*')
            i += 1
        elif pattern[i] == '?':
            parts.append('[^/]')
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile(''.join(parts))


def _matches_or_below(relative: str, patterns: List[re.Pattern]) -> bool:
    """True if the path or one of its parent directories matches a pattern."""
    segments = relative.split('/')
    prefixes = ['/'.join(segments[:n]) for n in range(1, len(segments) + 1)]
    return any(r.fullmatch(prefix) for r in patterns for prefix in prefixes)


def _walk_roots(root: Path, patterns: List[str]) -> List[Path]:
    """Directories to walk: the literal (wildcard-free) prefix of each pattern."""
    bases = []
    for pattern in patterns:
        segments = pattern.split('/')
        literal = []
        for segment in segments:
            if any(ch in segment for ch in '*?'):
                break
            literal.append(segment)
        if len(literal) == len(segments):
            # A plain file name: walk its directory
            literal = literal[:-1]
        bases.append(Path(os.path.normpath(root.joinpath(*literal))))

    roots: List[Path] = []
    for base in sorted(set(bases), key=lambda p: len(p.parts)):
        if not any(base == r or r in base.parents for r in roots):
            roots.append(base)
    return roots


def load_source_files(config: ProjectConfig) -> List[SourceFile]:
    """Parse every source file of the program.

    Unreadable files are skipped, like the parser does for binary files.
    """
    sources = []
    for path in config.source_paths():
        parser = LanguageParser.from_file_extension(path)
        if parser is None:
            continue
        try:
            source_code = path.read_bytes()
        except OSError as e:
            logger.warning("source_unreadable", path=str(path), error=str(e))
            continue
        try:
            display = str(path.relative_to(config.root))
        except ValueError:
            display = str(path)
        sources.append(SourceFile(
            path=path,
            source=source_code,
            tree=parser.parse_source(source_code),
            language=parser.language,
            display_path=display,
        ))
    logger.info("project_loaded", config=str(config.config_path), files=len(sources))
    return sources
