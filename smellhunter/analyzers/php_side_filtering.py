"""Detects filter()/reject()/whereIn()/whereNotIn() on a collection that was just fetched from the database."""

from typing import List, Optional, Tuple

from smellhunter.chains import CallChain, ChainLink
from smellhunter.engine import Analyzer, FileContext
from smellhunter.issues import Severity
from smellhunter.traversal import Visitor
from smellhunter.tree import NodeKind, NodeRef

CODE = "php-side-filtering"

RECOMMENDATIONS = {
    "filter": "Replace filter() with where() clauses before get()/all() to filter at database level. "
              "For complex filtering logic, consider database computed columns or raw where clauses.",
    "reject": "Replace reject() with where() or whereNot() clauses before get()/all() to filter at database "
              "level. The inverse logic can be expressed with whereNot() or negative where conditions.",
    "whereIn": "Call whereIn() on the query builder before get()/all(). Move this filtering to the database query.",
    "whereNotIn": "Call whereNotIn() on the query builder before get()/all(). "
                  "Move this filtering to the database query.",
}


class PhpFilteringVisitor(Visitor):
    kinds = frozenset({NodeKind.METHOD_CALL})

    def __init__(self, ctx: FileContext):
        self.ctx = ctx

    def on_enter(self, node: NodeRef):
        walker = self.ctx.chains
        if not walker.is_outermost(node):
            return
        chain = walker.walk(node)
        pair = self._fetch_then_filter(chain)
        if pair is None:
            return
        verdict = self.ctx.classifier.is_query_result_chain(chain, walker)
        if not verdict.is_finding:
            return
        fetch, filt = pair
        pattern = str(chain)
        self.ctx.aggregator.add(
            CODE,
            f"Filtering data in PHP instead of database: {pattern}",
            Severity.CRITICAL,
            filt.line,
            f"{RECOMMENDATIONS[filt.method]} Current pattern \"{pattern}\" loads all data into memory "
            f"before filtering, which is extremely inefficient and can cause memory exhaustion on large datasets.",
            {
                "chain": chain.methods,
                "fetch_method": fetch.method,
                "filter_method": filt.method,
                "evidence": verdict.reason,
                "confidence": verdict.confidence.value,
                "corroborated_by": list(verdict.corroborated_by),
            },
        )

    def _fetch_then_filter(self, chain: CallChain) -> Optional[Tuple[ChainLink, ChainLink]]:
        classifier = self.ctx.classifier
        links = chain.links
        for current, following in zip(links, links[1:]):
            if classifier.is_fetch_link(current, self.ctx.chains).is_match \
                    and classifier.is_filter_link(following).is_match:
                return current, following
        return None


class PhpSideFilteringAnalyzer(Analyzer):
    id = "php-side-filtering"
    name = "PHP-Side Filtering"
    description = "Detects filter(), reject(), whereIn() and whereNotIn() after a database fetch"
    severity = Severity.CRITICAL
    needs_registry = True
    priorities = (CODE,)
    defaults = {"whitelist": ()}

    passed_message = "No PHP-side filtering detected (filter/reject/whereIn/whereNotIn after fetch)"
    failed_message = "Found {count} instance(s) of PHP-side filtering that should be done in database"

    def should_analyze(self, ctx: FileContext) -> bool:
        return not any(part in ctx.relative_path for part in self.option_list("whitelist"))

    def visitors(self, ctx: FileContext) -> List[Visitor]:
        return [PhpFilteringVisitor(ctx)]
