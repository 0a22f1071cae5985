"""Shared fixtures: a small User/Role/UserRole/Post schema and an in-memory analyzer."""
from pathlib import Path

import pytest
import structlog

from grantscan.analyzer.registry import (
    AssociationDescriptor,
    AssociationKind,
    EntityDescriptor,
    EntityRegistry,
)
from grantscan.analyzer.syntax import SourceFile
from grantscan.analyzer.visitor import UsageAnalyzer

FIXTURES_DIR = Path(__file__).parent / 'fixtures'
SAMPLE_PROJECT = FIXTURES_DIR / 'sample_project'


def build_schema(through='UserRole') -> EntityRegistry:
    """User <-> Role many-to-many through `through`, User 1:n Post."""
    user = EntityDescriptor(
        name='User',
        table_name='users',
        associations={
            'roles': AssociationDescriptor('roles', AssociationKind.BELONGS_TO_MANY, 'Role', through),
            'posts': AssociationDescriptor('posts', AssociationKind.HAS_MANY, 'Post'),
        },
    )
    role = EntityDescriptor(
        name='Role',
        table_name='roles',
        associations={
            'users': AssociationDescriptor('users', AssociationKind.BELONGS_TO_MANY, 'User', through),
        },
    )
    user_role = EntityDescriptor(name='UserRole', table_name='user_roles')
    post = EntityDescriptor(
        name='Post',
        table_name='posts',
        associations={
            'author': AssociationDescriptor('author', AssociationKind.BELONGS_TO, 'User'),
        },
    )
    return EntityRegistry([user, role, user_role, post])


@pytest.fixture
def registry() -> EntityRegistry:
    return build_schema()


@pytest.fixture
def analyze(registry):
    """Run a full analysis over in-memory files: analyze({'a.ts': code, ...})."""
    def _analyze(files, schema=None, only_from_module=None) -> UsageAnalyzer:
        sources = [SourceFile.from_source(path, code) for path, code in files.items()]
        analyzer = UsageAnalyzer(schema if schema is not None else registry, sources, only_from_module=only_from_module)
        analyzer.run()
        return analyzer
    return _analyze


@pytest.fixture(autouse=True)
def reset_structlog():
    """CLI tests configure structlog against captured streams; undo that."""
    yield
    structlog.reset_defaults()
