"""Tests for reading sequelize-typescript model classes into a registry."""
import pytest

from grantscan.analyzer.model_loader import extract_registry, extract_registry_from_paths, pluralize
from grantscan.analyzer.registry import AssociationKind
from grantscan.analyzer.syntax import SourceFile

from conftest import SAMPLE_PROJECT


def extract(code: str):
    return extract_registry([SourceFile.from_source('models.ts', code)])


@pytest.mark.parametrize('name, plural', [
    ('User', 'Users'),
    ('Category', 'Categories'),
    ('Day', 'Days'),
    ('Address', 'Addresses'),
    ('Box', 'Boxes'),
    ('Match', 'Matches'),
])
def test_pluralize(name, plural):
    assert pluralize(name) == plural


class TestTableOptions:

    def test_table_name(self):
        registry = extract("""
@Table({ tableName: 'users' })
export class User extends Model {}
""")
        assert registry['User'].table == 'users'

    def test_default_table_name_is_plural(self):
        registry = extract("""
@Table
class Category extends Model {}
""")
        assert registry['Category'].table == 'Categories'

    def test_freeze_table_name(self):
        registry = extract("""
@Table({ freezeTableName: true })
class Tag extends Model {}
""")
        assert registry['Tag'].table == 'Tag'

    def test_model_name_and_schema(self):
        registry = extract("""
@Table({ modelName: 'Account', tableName: 'accounts', schema: 'crm' })
export class AccountModel extends Model {}
""")
        assert 'AccountModel' not in registry
        assert registry['Account'].table == 'crm.accounts'

    def test_undecorated_class_is_not_a_model(self):
        registry = extract("""
export class UserService {
  @Inject() repo: Repo;
}
""")
        assert len(registry) == 0


class TestAssociationDecorators:

    def test_all_kinds(self):
        registry = extract("""
@Table
class User extends Model {
  @BelongsTo(() => Organization, 'organizationId')
  organization: Organization;

  @HasOne(() => Profile)
  profile: Profile;

  @HasMany(() => Post, { as: 'articles' })
  posts: Post[];

  @BelongsToMany(() => Role, () => UserRole)
  roles: Role[];
}
""")
        associations = registry['User'].associations
        assert associations['organization'].kind == AssociationKind.BELONGS_TO
        assert associations['organization'].through is None
        assert associations['profile'].kind == AssociationKind.HAS_ONE
        assert associations['articles'].target == 'Post'
        assert associations['roles'].kind == AssociationKind.BELONGS_TO_MANY
        assert associations['roles'].target == 'Role'
        assert associations['roles'].through == 'UserRole'

    def test_through_option(self):
        registry = extract("""
@Table
class Post extends Model {
  @BelongsToMany(() => Tag, { through: { model: () => PostTag, unique: false } })
  tags: Tag[];
}
""")
        assert registry['Post'].associations['tags'].through == {'model': 'PostTag'}

    def test_string_through_becomes_a_model(self):
        registry = extract("""
@Table
class Post extends Model {
  @BelongsToMany(() => Tag, { through: 'post_tags' })
  tags: Tag[];
}

@Table({ freezeTableName: true })
class Tag extends Model {}
""")
        assert registry['Post'].associations['tags'].through == 'post_tags'
        assert registry['post_tags'].table == 'post_tags'

    def test_string_through_naming_a_model_class(self):
        """A string may also name an explicitly declared join model."""
        registry = extract("""
@Table
class User extends Model {
  @BelongsToMany(() => Role, 'UserRole')
  roles: Role[];
}

@Table({ tableName: 'user_roles' })
class UserRole extends Model {}
""")
        assert registry['UserRole'].table == 'user_roles'

    def test_references_use_the_model_name(self):
        """Sequelize registers models under `modelName`, not the class name."""
        registry = extract("""
@Table
class User extends Model {
  @HasMany(() => Role)
  roles: Role[];

  @BelongsToMany(() => Group, () => MembershipModel)
  groups: Group[];
}

@Table({ modelName: 'role', tableName: 'roles' })
class Role extends Model {}

@Table({ modelName: 'Membership' })
class MembershipModel extends Model {}
""")
        associations = registry['User'].associations
        assert associations['roles'].target == 'role'
        assert associations['roles'].target in registry
        assert associations['groups'].target == 'Group'
        assert associations['groups'].through == 'Membership'
        assert 'MembershipModel' not in registry


class TestSampleProject:

    def test_extract_from_directory(self):
        registry = extract_registry_from_paths([SAMPLE_PROJECT / 'src' / 'models'])
        assert set(registry.names()) == {
            'Organization', 'Post', 'Role', 'Tag', 'User', 'UserRole', 'post_tags',
        }
        assert registry['Organization'].table == 'crm.organizations'
        assert registry['Post'].table == 'Posts'
        assert registry['User'].associations['roles'].through == 'UserRole'
        assert registry['Post'].associations['author'].kind == AssociationKind.BELONGS_TO

    def test_extract_from_file(self):
        registry = extract_registry_from_paths([SAMPLE_PROJECT / 'src' / 'models' / 'tag.model.ts'])
        assert registry.names() == ['Tag']
