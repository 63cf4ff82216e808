"""
Simplification Rule Catalog

Structured descriptions of the two detectors.  Each entry provides the
title, rationale, a before/after example, when the rewrite is withheld, and
the configuration knobs that influence the rule.
"""

from typing import Dict, Optional, List
from dataclasses import dataclass, field

from simplifier.models import FindingKind


@dataclass
class SimplifyRule:
    rule_id: str
    title: str
    rationale: str
    before: str                            # code example
    after: str                             # rewritten code example
    withheld_when: List[str]               # shapes that stay informational
    options: List[str] = field(default_factory=list)


_RULES: Dict[str, SimplifyRule] = {}

def _add(rule: SimplifyRule):
    _RULES[rule.rule_id] = rule


_add(SimplifyRule(
    rule_id=FindingKind.INLINABLE_SINGLE_USE.value,
    title="Single-use local binding",
    rationale=(
        "A local that is written once and read once, immediately after its "
        "declaration, adds a name without adding meaning.  Substituting the "
        "initializer at the usage site shortens the code and removes a "
        "place where the value could later be modified by accident."
    ),
    before="""\
function total(order) {
  const subtotal = order.items.reduce(sum, 0);
  return subtotal + order.shipping;
}""",
    after="""\
function total(order) {
  return order.items.reduce(sum, 0) + order.shipping;
}""",
    withheld_when=[
        "the binding is exported, has a type annotation, or uses a destructuring pattern",
        "the single read is not in the statement directly after the declaration",
        "the read sits in a loop body, callback, or conditionally evaluated branch",
        "code evaluated before the read has side effects the initializer could observe",
        "the initializer is nested deeper than max_inline_depth",
        "a comment explains the declaration, or the name serves a type-narrowing check",
    ],
    options=["max_inline_depth", "pure_functions"],
))

_add(SimplifyRule(
    rule_id=FindingKind.DUPLICATED_PARALLEL_COLLECTION.value,
    title="Parallel collections kept in lock-step",
    rationale=(
        "Two collections derived element-for-element from the same source "
        "(or appended together in one loop) are only meaningful when read at "
        "the same index.  Keeping them separate means every consumer has to "
        "re-establish that alignment; one sequence of records makes it explicit."
    ),
    before="""\
const imgs = lis.map(li => li.querySelector('img'));
lis.forEach((li, i) => {
  imgs[i].alt = li.title;
});""",
    after="""\
const liRecords = lis.map(li => ({ li, img: li.querySelector('img') }));
liRecords.forEach(({ li, img }, i) => {
  img.alt = li.title;
});""",
    withheld_when=[
        "a member is filtered, sliced, or reassigned so indices no longer line up",
        "a member is mutated after it is built (push, splice, sort, index assignment)",
        "a member escapes: returned, passed to a call, or read outside an aligned loop",
        "the deriving callbacks have side effects whose order would change",
        "the co-building loop can exit early between appends",
    ],
))


def get_rule(rule_id: str) -> Optional[SimplifyRule]:
    """Look up a rule by id; case-insensitive and tolerant of '-' for '_'."""
    normalized = rule_id.strip().upper().replace("-", "_")
    return _RULES.get(normalized)


def get_all_rules() -> Dict[str, SimplifyRule]:
    return dict(_RULES)


def format_rule_explanation(rule_id: str) -> str:
    """Return a rich, human-readable explanation of a rule."""
    rule = get_rule(rule_id)
    if rule is None:
        return f"Unknown rule: {rule_id}"

    explanation = f"""## {rule.rule_id} — {rule.title}

### Rationale
{rule.rationale}

### Before
```js
{rule.before}
```

### After
```js
{rule.after}
```

### Rewrite Withheld When"""
    for reason in rule.withheld_when:
        explanation += f"\n- {reason}"

    if rule.options:
        explanation += f"\n\n### Options\n{', '.join(rule.options)}"

    return explanation


def format_rule_list() -> str:
    lines = ["| Rule | Title |", "|------|-------|"]
    for rule in _RULES.values():
        lines.append(f"| `{rule.rule_id}` | {rule.title} |")
    return "\n".join(lines)
