"""Tests for namespace/use based class name resolution."""

from smellhunter.names import NameResolver, ResolvedName, Unresolvable
from smellhunter.tree import NodeKind, parse

SOURCE = """<?php

namespace App\\Http\\Controllers;

use App\\Models\\User;
use App\\Models\\Comment as Reply;
use Illuminate\\Support\\Facades\\DB;
use function App\\Support\\helper;

class UserController extends BaseController
{
    public function index()
    {
        return self::make(parent::boot());
    }
}
"""


def resolver():
    tree = parse(SOURCE)
    return tree, NameResolver(tree)


class TestResolve:
    """Short names, aliases and the current namespace."""

    def test_imported_name(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        result = names.resolve("User", at)
        assert isinstance(result, ResolvedName)
        assert result.fully_qualified_name == "\\App\\Models\\User"
        assert result.short_name == "User"
        assert result.namespace == "App\\Models"
        assert "use App\\Models\\User" in result.alias_source

    def test_alias(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        assert str(names.resolve("Reply", at)) == "\\App\\Models\\Comment"

    def test_alias_lookup_is_case_insensitive(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        assert str(names.resolve("db", at)) == "\\Illuminate\\Support\\Facades\\DB"

    def test_unimported_name_uses_current_namespace(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        assert str(names.resolve("OrderController", at)) == "\\App\\Http\\Controllers\\OrderController"

    def test_qualified_name_through_alias(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        assert str(names.resolve("User\\Profile", at)) == "\\App\\Models\\User\\Profile"

    def test_namespace_keyword(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        assert str(names.resolve("namespace\\Admin\\Panel", at)) == "\\App\\Http\\Controllers\\Admin\\Panel"

    def test_function_imports_are_not_class_aliases(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        assert str(names.resolve("helper", at)) == "\\App\\Http\\Controllers\\helper"

    def test_fully_qualified_is_idempotent(self):
        tree, names = resolver()
        at = tree.of_kind(NodeKind.CLASS)[0]
        for name in ("\\App\\Models\\User", "\\User", "\\Illuminate\\Support\\Str"):
            assert names.resolve(name, at).fully_qualified_name == name
            again = names.resolve(names.resolve(name, at).fully_qualified_name, at)
            assert again.fully_qualified_name == name

    def test_dynamic_names_are_unresolvable(self):
        _, names = resolver()
        for name in ("$model", "", "123abc"):
            result = names.resolve(name)
            assert isinstance(result, Unresolvable)
            assert not result


class TestResolveNode:
    """Relative scopes inside classes."""

    def test_self_and_parent(self):
        tree, names = resolver()
        scopes = [n for n in tree if n.type == "relative_scope"]
        by_text = {n.text: names.resolve_node(n) for n in scopes}
        assert str(by_text["self"]) == "\\App\\Http\\Controllers\\UserController"
        assert str(by_text["parent"]) == "\\App\\Http\\Controllers\\BaseController"

    def test_variable_scope(self):
        tree = parse("<?php $class::create();")
        names = NameResolver(tree)
        call = tree.of_kind(NodeKind.STATIC_CALL)[0]
        assert isinstance(names.resolve_node(call.field("scope")), Unresolvable)

    def test_global_namespace(self):
        tree = parse("<?php\nuse App\\Models\\Order;\nOrder::first();\nInvoice::first();\n")
        names = NameResolver(tree)
        calls = tree.of_kind(NodeKind.STATIC_CALL)
        resolved = [str(names.resolve_node(c.field("scope"))) for c in calls]
        assert resolved == ["\\App\\Models\\Order", "\\Invoice"]
