"""Tests for verdicts, corroboration and the classifier predicates."""

import pytest

from smellhunter.classifier import (
    DEFAULT_TABLES, UNKNOWN, Classifier, Confidence, Verdict, corroborate, excluded, strong, weak,
)
from smellhunter.names import ResolvedName, Unresolvable
from smellhunter.registry import ModelRegistry
from smellhunter.tree import NodeKind


class TestCorroborate:
    """Combination rules for independent signals."""

    def test_exclusion_wins_over_strong(self):
        verdict = corroborate(strong("model-namespace"), excluded("excluded-class"), weak("a"), weak("b"))
        assert verdict.is_exclusion
        assert not verdict.is_finding

    def test_single_strong_is_finding(self):
        verdict = corroborate(UNKNOWN, strong("db-facade"))
        assert verdict.is_finding
        assert verdict.reason == "db-facade"

    def test_two_distinct_weak_signals(self):
        verdict = corroborate(weak("fetch-method"), weak("filter-method"))
        assert verdict.is_match
        assert verdict.confidence is Confidence.WEAK
        assert verdict.corroborated_by == ("fetch-method", "filter-method")
        assert verdict.is_finding

    def test_repeated_weak_signal_is_not_corroboration(self):
        verdict = corroborate(weak("plural-name"), weak("plural-name"))
        assert verdict.is_match
        assert not verdict.is_finding

    def test_nothing(self):
        assert corroborate() == UNKNOWN
        assert corroborate(UNKNOWN, UNKNOWN) == UNKNOWN

    def test_lone_weak_is_not_finding(self):
        assert not Verdict(True, Confidence.WEAK, "pascal-case-class").is_finding


class TestOrmModelReference:
    """Exclusion, namespace, suffix and naming tiers."""

    @pytest.mark.parametrize("name", [
        ResolvedName("Collection", "\\App\\Models\\Collection"),
        ResolvedName("Arr", "\\Illuminate\\Support\\Arr"),
        ResolvedName("UserService", "\\App\\Models\\UserService"),
        "Carbon",
        "\\App\\Models\\OrderRepository",
    ])
    def test_exclusion_beats_model_namespace(self, name):
        verdict = Classifier().is_orm_model_reference(name)
        assert verdict == Verdict(False, Confidence.STRONG, verdict.reason)
        assert verdict.is_exclusion

    def test_model_namespace(self):
        verdict = Classifier().is_orm_model_reference(ResolvedName("User", "\\App\\Models\\User"))
        assert verdict.is_finding
        assert verdict.reason == "model-namespace"

    def test_module_models_namespace(self):
        verdict = Classifier().is_orm_model_reference("\\Modules\\Billing\\Models\\Invoice")
        assert verdict.reason == "model-namespace"

    def test_model_suffix(self):
        assert Classifier().is_orm_model_reference("\\Legacy\\AccountModel").reason == "model-suffix"

    def test_pascal_case_is_weak(self):
        verdict = Classifier().is_orm_model_reference("Order")
        assert verdict.is_match
        assert verdict.confidence is Confidence.WEAK

    def test_unresolvable(self):
        assert Classifier().is_orm_model_reference(Unresolvable()) == UNKNOWN
        assert Classifier().is_orm_model_reference(None) == UNKNOWN

    def test_registry_hit(self):
        registry = ModelRegistry({"Domain\\Billing\\Invoice": "invoices"})
        verdict = Classifier(registry=registry).is_orm_model_reference("\\Domain\\Billing\\Invoice")
        assert verdict.reason == "registered-model"

    def test_extended_tables(self):
        tables = DEFAULT_TABLES.extended(excluded_classes=["Money"])
        assert Classifier(tables).is_orm_model_reference("Money").is_exclusion
        assert not Classifier().is_orm_model_reference("Money").is_exclusion

    def test_extending_scalar_table_fails(self):
        with pytest.raises(TypeError):
            DEFAULT_TABLES.extended(model_namespace_marker=["x"])


class TestRelationshipNames:
    @pytest.mark.parametrize("name,expected", [
        ("id", (False, Confidence.STRONG)),
        ("email", (False, Confidence.STRONG)),
        ("author", (True, Confidence.STRONG)),
        ("comments", (True, Confidence.WEAK)),
        ("orderItems", (True, Confidence.WEAK)),
        ("user", (False, Confidence.NONE)),
        ("address", (False, Confidence.NONE)),
        ("news", (False, Confidence.NONE)),
    ])
    def test_tiers(self, name, expected):
        verdict = Classifier().is_relationship_property_name(name)
        assert (verdict.is_match, verdict.confidence) == expected


class TestQueryChains:
    """Root evidence corroborated by fetch and filter calls."""

    def test_model_root_is_strong(self, php):
        parsed = php("<?php\nuse App\\Models\\User;\n$u = User::where('active', true)->get()->filter(fn($u) => $u->active);\n")
        call = parsed.first(NodeKind.METHOD_CALL, "->filter(")
        chain = parsed.chains.walk(call)
        verdict = Classifier().is_query_result_chain(chain, parsed.chains)
        assert verdict.is_finding
        assert verdict.confidence is Confidence.STRONG
        assert verdict.reason == "model-namespace"

    def test_variable_root_uses_weak_corroboration(self, php):
        parsed = php("<?php\n$rows = $query->get()->filter(fn($r) => $r->ok);\n")
        call = parsed.first(NodeKind.METHOD_CALL, "->filter(")
        verdict = Classifier().is_query_result_chain(parsed.chains.walk(call), parsed.chains)
        assert verdict.is_finding
        assert verdict.confidence is Confidence.WEAK
        assert set(verdict.corroborated_by) == {"fetch-method", "filter-method"}

    def test_excluded_root(self, php):
        parsed = php("<?php\n$x = Collection::make($a)->all()->filter(fn($r) => $r);\n")
        call = parsed.first(NodeKind.METHOD_CALL, "->filter(")
        assert Classifier().is_query_result_chain(parsed.chains.walk(call), parsed.chains).is_exclusion

    def test_function_root_is_excluded(self, php):
        parsed = php("<?php\n$x = collect($a)->all()->filter(fn($r) => $r);\n")
        call = parsed.first(NodeKind.METHOD_CALL, "->filter(")
        assert not Classifier().is_query_result_chain(parsed.chains.walk(call), parsed.chains).is_finding


class TestDatabaseCalls:
    def test_db_facade(self, php):
        parsed = php("<?php\nuse Illuminate\\Support\\Facades\\DB;\nDB::select('select 1');\n")
        call = parsed.first(NodeKind.STATIC_CALL)
        assert Classifier().is_database_facade_call(call, parsed.names).reason == "db-facade"

    def test_model_static_query(self, php):
        parsed = php("<?php\nuse App\\Models\\User;\nUser::find(1);\n")
        call = parsed.first(NodeKind.STATIC_CALL)
        assert Classifier().is_database_facade_call(call, parsed.names).is_finding

    def test_utility_static_call(self, php):
        parsed = php("<?php\nStr::slug($title);\n")
        call = parsed.first(NodeKind.STATIC_CALL)
        assert not Classifier().is_database_facade_call(call, parsed.names).is_finding

    def test_builder_chain(self, php):
        parsed = php("<?php\n$q->join('posts', 'a', '=', 'b')->groupBy('a')->get();\n")
        call = parsed.first(NodeKind.METHOD_CALL, "->get(")
        verdict = Classifier().is_database_facade_call(call, parsed.names, parsed.chains)
        assert verdict.is_finding


class TestBusinessLogic:
    @pytest.mark.parametrize("source,reason", [
        ("dispatch(new SendInvoice($order));", "side-effect-helper"),
        ("Mail::to($user)->send(new Welcome());", "side-effect-facade"),
        ("App::make(PaymentGateway::class);", "container-resolution"),
        ("InvoiceCalculator::total($order);", "static-service-call"),
    ])
    def test_positive(self, php, source, reason):
        parsed = php("<?php\n" + source + "\n")
        calls = parsed.tree.of_kind(NodeKind.FUNCTION_CALL, NodeKind.STATIC_CALL)
        assert Classifier().is_business_logic_call(calls[0], parsed.names).reason == reason

    def test_utility_class_is_excluded(self, php):
        parsed = php("<?php\nCarbon::now();\n")
        call = parsed.first(NodeKind.STATIC_CALL)
        assert Classifier().is_business_logic_call(call, parsed.names).is_exclusion


class TestFilesystem:
    @pytest.mark.parametrize("source,is_match", [
        ("file_put_contents($path, $data);", True),
        ("Storage::put($path, $data);", True),
        ("Storage::disk('s3')->get($path);", True),
        ("response()->download($path);", True),
        ("new UploadedFile($path, 'a.txt');", True),
        ("$this->filesystem->exists($path);", True),
        ("asset($path);", False),
        ("Storage::url($path);", False),
        ("url()->to($path);", False),
        ("$user->get($path);", False),
    ])
    def test_operations(self, php, source, is_match):
        parsed = php("<?php\n" + source + "\n")
        calls = parsed.tree.of_kind(NodeKind.FUNCTION_CALL, NodeKind.STATIC_CALL,
                                    NodeKind.METHOD_CALL, NodeKind.NEW)
        outer = calls[0]
        assert Classifier().is_filesystem_operation(outer, parsed.names).is_match is is_match

    def test_asset_context(self, php):
        parsed = php("<?php\nStorage::temporaryUrl($path, now());\n")
        call = parsed.first(NodeKind.STATIC_CALL)
        assert Classifier().is_asset_context(call, parsed.names)
