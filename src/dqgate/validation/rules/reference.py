"""Reference (static) data consistency rules.

Securities, counterparties and their relationships, aggregation units and
index compositions. Most checks here are referential: identifiers are
resolved through lookup indices built once for the whole run.
"""

from collections.abc import Iterable, Mapping

from ..framework import Dataset, Domain, Record, RuleSet, ValidationRule, Violation, is_blank, is_number
from ..indices import IndexSet, IndexSpec
from ..keys import DuplicateKeyRule
from ..tolerance import ToleranceProfile, display, weights_sum_to_one
from .common import ConfiguredRule, DateOrderRule, ReferenceRule, SelfReferenceRule

SECURITIES_CATEGORY = "Securities"
COUNTERPARTIES_CATEGORY = "Counterparties"
AGGREGATION_UNITS_CATEGORY = "Aggregation Units"
INDEX_COMPOSITIONS_CATEGORY = "Index Compositions"

SECURITY_INDEX = IndexSpec("securities", "internalId")
COUNTERPARTY_INDEX = IndexSpec("counterparties", "counterpartyId")
AGGREGATION_UNIT_INDEX = IndexSpec("aggregationUnits", "aggregationUnitId")
COMPOSITION_BY_INDEX = IndexSpec("indexCompositions", "indexId")


class IdentifiersPresentRule(ConfiguredRule):
    """An entity carries at least one external identifier."""

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        identifiers = record.get("identifiers")
        if not isinstance(identifiers, (list, tuple)) or not identifiers:
            yield self.render(record, index, "/identifiers")


class PrimaryIdentifierRule(ConfiguredRule):
    """The primary identifier also appears in the identifiers collection."""

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        primary = record.get("primaryIdentifier")
        if not isinstance(primary, Mapping):
            return
        identifiers = record.get("identifiers")
        if not isinstance(identifiers, (list, tuple)):
            identifiers = ()
        wanted = (primary.get("type"), primary.get("value"))
        if not any(isinstance(item, Mapping) and (item.get("type"), item.get("value")) == wanted
                   for item in identifiers):
            yield self.render(record, index, "/primaryIdentifier",
                              identifier=f"{primary.get('type')}:{primary.get('value')}")


class BasketCompositionRule(ConfiguredRule):
    """A basket product is named as index by at least one composition record."""

    def __init__(self, name: str, **kwargs):
        super().__init__(name, **kwargs)
        self.requires = (COMPOSITION_BY_INDEX,)

    def check_record(self, record: Record, index: int, indices: IndexSet) -> Iterable[Violation]:
        if record.get("isBasketProduct") is not True:
            return
        if not indices.contains(COMPOSITION_BY_INDEX, record.get("internalId")):
            yield self.render(record, index)


class UniqueBookRule(ValidationRule):
    """A trading book belongs to at most one aggregation unit."""
    domain = Domain.REFERENCE
    category = AGGREGATION_UNITS_CATEGORY
    collection = "aggregationUnits"

    @property
    def name(self) -> str:
        return "aggregation_unit_unique_books"

    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        owners = {}
        violations = []
        for index, unit in enumerate(dataset.collection(self.collection)):
            books = unit.get("books")
            if not isinstance(books, (list, tuple)):
                continue
            for book in books:
                try:
                    owner = owners.setdefault(book, unit.get("aggregationUnitId"))
                except TypeError:
                    continue
                if owner != unit.get("aggregationUnitId"):
                    violations.append(self.violation(
                        f"Book {book} is associated with multiple aggregation units: {owner} and "
                        f"{unit.get('aggregationUnitId')}",
                        index,
                        "/books",
                    ))
        return violations


class CompositionGroupRule(ValidationRule):
    """Base for checks over all composition records sharing an index id.

    Groups are visited in order of first appearance and each finding is
    attributed to the first record of its group.
    """
    domain = Domain.REFERENCE
    category = INDEX_COMPOSITIONS_CATEGORY
    collection = "indexCompositions"

    def groups(self, dataset: Dataset) -> dict:
        grouped = {}
        for index, composition in enumerate(dataset.collection(self.collection)):
            index_id = composition.get("indexId")
            if is_blank(index_id):
                continue
            try:
                grouped.setdefault(index_id, []).append((index, composition))
            except TypeError:
                continue
        return grouped


class IndexMarkedAsBasketRule(CompositionGroupRule):
    """A security used as an index is flagged as a basket product."""
    requires = (SECURITY_INDEX,)

    @property
    def name(self) -> str:
        return "index_composition_basket_flag"

    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        violations = []
        for index_id, members in self.groups(dataset).items():
            security = indices.lookup(SECURITY_INDEX, index_id)
            if security is not None and security.get("isBasketProduct") is not True:
                violations.append(self.violation(
                    f"Security {index_id} is used as an index but not marked as a basket product",
                    members[0][0],
                    "/indexId",
                ))
        return violations


class IndexWeightSumRule(CompositionGroupRule):
    """Constituent weights of one index sum to 1.0 within the index tolerance."""
    profile = ToleranceProfile.INDEX_WEIGHT

    @property
    def name(self) -> str:
        return "index_composition_weight_sum"

    def check(self, dataset: Dataset, indices: IndexSet) -> list[Violation]:
        violations = []
        for index_id, members in self.groups(dataset).items():
            weights = [composition.get("weight") for _, composition in members]
            if not all(is_number(weight) for weight in weights):
                violations.append(self.violation(
                    f"Index {index_id} has constituent weights that are not all numeric",
                    members[0][0],
                    "/weight",
                ))
                continue
            balanced, weight_sum = weights_sum_to_one(weights, self.profile)
            if not balanced:
                violations.append(self.violation(
                    f"Index {index_id} has constituent weights that sum to {display(weight_sum)}, "
                    f"expected approximately 1.0",
                    members[0][0],
                    "/weight",
                ))
        return violations


def build_reference_rule_set(config=None) -> RuleSet:
    """Create the reference data rule set."""
    domain = Domain.REFERENCE
    rule_set = RuleSet("Reference Data Consistency", domain)

    security = dict(domain=domain, category=SECURITIES_CATEGORY, collection="securities", entity="Security")
    rule_set.add_rule(DuplicateKeyRule(
        "security_duplicate_id", fields=("internalId",),
        message="Duplicate security internalId: {internalId}", **security,
    ))
    rule_set.add_rule(IdentifiersPresentRule(
        "security_identifiers", message="Security {internalId} has no identifiers", **security,
    ))
    rule_set.add_rule(BasketCompositionRule(
        "security_basket_composition",
        message="Basket product {internalId} has no index composition records", **security,
    ))
    rule_set.add_rule(PrimaryIdentifierRule(
        "security_primary_identifier",
        message="Security {internalId} has primaryIdentifier {identifier} not found in identifiers collection",
        **security,
    ))
    rule_set.add_rule(DateOrderRule(
        "security_issue_before_maturity", start="issueDate", end="maturityDate",
        message="Security {internalId} has maturityDate ({maturityDate}) on or before issueDate ({issueDate})",
        **security,
    ))

    counterparty = dict(domain=domain, category=COUNTERPARTIES_CATEGORY, collection="counterparties",
                        entity="Counterparty")
    rule_set.add_rule(DuplicateKeyRule(
        "counterparty_duplicate_id", fields=("counterpartyId",),
        message="Duplicate counterpartyId: {counterpartyId}", **counterparty,
    ))
    rule_set.add_rule(IdentifiersPresentRule(
        "counterparty_identifiers", message="Counterparty {counterpartyId} has no identifiers", **counterparty,
    ))
    rule_set.add_rule(PrimaryIdentifierRule(
        "counterparty_primary_identifier",
        message="Counterparty {counterpartyId} has primaryIdentifier {identifier} not found in "
                "identifiers collection",
        **counterparty,
    ))

    relationship = dict(domain=domain, category=COUNTERPARTIES_CATEGORY, collection="counterpartyRelationships",
                        entity="Counterparty relationship")
    for field_name in ("parentId", "childId"):
        rule_set.add_rule(ReferenceRule(
            f"counterparty_relationship_{field_name}", field=field_name, target=COUNTERPARTY_INDEX,
            message=f"Counterparty relationship references non-existent {field_name}: {{value}}",
            **relationship,
        ))
    rule_set.add_rule(SelfReferenceRule(
        "counterparty_relationship_self", field="parentId", own_field="childId",
        message="Counterparty relationship has same parent and child ID: {value}", **relationship,
    ))

    unit = dict(domain=domain, category=AGGREGATION_UNITS_CATEGORY, collection="aggregationUnits",
                entity="Aggregation unit")
    rule_set.add_rule(DuplicateKeyRule(
        "aggregation_unit_duplicate_id", fields=("aggregationUnitId",),
        message="Duplicate aggregationUnitId: {aggregationUnitId}", **unit,
    ))
    rule_set.add_rule(ReferenceRule(
        "aggregation_unit_officer", field="officerId", target=COUNTERPARTY_INDEX,
        message="Aggregation unit {aggregationUnitId} references non-existent officerId: {value}", **unit,
    ))
    rule_set.add_rule(ReferenceRule(
        "aggregation_unit_parent", field="parentEntityId", target=AGGREGATION_UNIT_INDEX,
        message="Aggregation unit {aggregationUnitId} references non-existent parentEntityId: {value}", **unit,
    ))
    rule_set.add_rule(SelfReferenceRule(
        "aggregation_unit_self_parent", field="parentEntityId", own_field="aggregationUnitId",
        message="Aggregation unit {aggregationUnitId} references itself as parent", **unit,
    ))
    rule_set.add_rule(UniqueBookRule())

    composition = dict(domain=domain, category=INDEX_COMPOSITIONS_CATEGORY, collection="indexCompositions",
                       entity="Index composition")
    rule_set.add_rule(ReferenceRule(
        "index_composition_index", field="indexId", target=SECURITY_INDEX,
        message="Index composition references non-existent index security: {value}", **composition,
    ))
    rule_set.add_rule(ReferenceRule(
        "index_composition_constituent", field="constituentId", target=SECURITY_INDEX,
        message="Index composition references non-existent constituent security: {value}", **composition,
    ))
    rule_set.add_rule(SelfReferenceRule(
        "index_composition_self", field="indexId", own_field="constituentId",
        message="Index composition has same index and constituent ID: {value}", **composition,
    ))
    rule_set.add_rule(IndexMarkedAsBasketRule())
    rule_set.add_rule(IndexWeightSumRule())
    rule_set.add_rule(DateOrderRule(
        "index_composition_effective_before_expiry", start="effectiveDate", end="expiryDate",
        message="Index composition for {indexId}/{constituentId} has expiryDate ({expiryDate}) on or before "
                "effectiveDate ({effectiveDate})",
        **composition,
    ))

    return rule_set
