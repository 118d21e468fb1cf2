"""Detects catching the generic Exception/Throwable instead of specific exception types."""

from typing import List

from smellhunter.analyzers.silent_failure import catch_types
from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity
from smellhunter.traversal import Visitor
from smellhunter.tree import NodeKind, NodeRef

CODE = "generic-exception-catch"
GENERIC_TYPES = frozenset({"Exception", "\\Exception", "Throwable", "\\Throwable"})


class GenericExceptionVisitor(Visitor):
    kinds = frozenset({NodeKind.CATCH})

    def __init__(self, ctx: FileContext):
        self.ctx = ctx

    def on_enter(self, node: NodeRef):
        for type_name in catch_types(node):
            if type_name in GENERIC_TYPES:
                self.ctx.aggregator.add(
                    CODE,
                    f"Catching generic {type_name} instead of specific exception type",
                    Severity.LOW,
                    node.line,
                    "Catch specific exception types (e.g., ModelNotFoundException, ValidationException) "
                    "for better error handling and to avoid catching unexpected errors",
                    {"exception_type": type_name},
                )
                return


class GenericExceptionCatchAnalyzer(Analyzer):
    id = "generic-exception-catch"
    name = "Generic Exception Catch"
    description = "Detects catching generic Exception class instead of specific exception types"
    severity = Severity.LOW
    priorities = (CODE,)

    passed_message = "All exception catches use specific exception types"
    failed_message = "Found {count} generic exception catch(es)"

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [GenericExceptionVisitor(ctx)]
