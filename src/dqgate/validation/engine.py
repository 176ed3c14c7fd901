"""Validation engine: orchestrates index building and rule set execution."""

import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from ..config import DqgateConfig, create_default_config
from .framework import Dataset, Domain, RuleSet, ValidationResult, ValidationRule, Violation
from .indices import IndexSet
from .jurisdiction import DEFAULT_JURISDICTION_TABLE, JurisdictionRuleTable
from .rules import RULE_SET_BUILDERS

logger = logging.getLogger(__name__)


def rule_sets_for(domains: Iterable[Domain | str], config: DqgateConfig | None = None) -> list[RuleSet]:
    """Build the default rule set for each requested domain, in order."""
    return [RULE_SET_BUILDERS[Domain(domain)](config) for domain in domains]


class ValidationEngine:
    """Runs rule sets against a dataset and collects every violation.

    The engine holds no state between calls apart from its configuration
    and the read-only jurisdiction table, so one instance may validate
    many datasets, including concurrently.
    """

    def __init__(self, config: DqgateConfig | None = None,
                 jurisdictions: JurisdictionRuleTable | None = DEFAULT_JURISDICTION_TABLE):
        self.config = config or create_default_config()
        self.jurisdictions = jurisdictions

    def jurisdiction_rules(self, domain: Domain) -> list[ValidationRule]:
        """Jurisdiction rules that apply to a domain under the current configuration."""
        settings = self.config.jurisdiction
        if self.jurisdictions is None or not settings.enabled:
            return []
        return self.jurisdictions.rules_for(domain, settings.markets)

    def plan(self, rule_sets: Iterable[RuleSet]) -> list[tuple[RuleSet, list[ValidationRule]]]:
        """Pair each rule set with the full rule list it will run."""
        return [
            (rule_set, list(rule_set.rules) + self.jurisdiction_rules(rule_set.domain))
            for rule_set in rule_sets
        ]

    def validate(self, dataset: Dataset | Mapping[str, Any], rule_sets: Iterable[RuleSet]) -> ValidationResult:
        """Validate a dataset against rule sets.

        Every rule runs; a failing rule never stops the others. Results are
        merged in the order the rule sets were given, whether or not they
        were evaluated concurrently.

        Args:
            dataset: Dataset, or decoded JSON convertible to one
            rule_sets: Rule sets to evaluate

        Returns:
            ValidationResult with violations and counters

        Raises:
            DatasetError: If ``dataset`` cannot be interpreted as a dataset
        """
        dataset = Dataset.from_dict(dataset)
        plan = self.plan(rule_sets)

        specs = {spec for _, rules in plan for rule in rules for spec in rule.requires}
        indices = IndexSet.build(dataset, specs)

        rule_count = sum(len(rules) for _, rules in plan)
        logger.info(f"Starting validation of {dataset.record_count()} records in {len(dataset)} collections")
        logger.info(f"Running {rule_count} rules from {len(plan)} rule sets")

        settings = self.config.engine
        if settings.parallel and len(plan) > 1:
            max_workers = min(settings.max_workers, len(plan))
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [
                    executor.submit(self._run_rule_set, rule_set, rules, dataset, indices)
                    for rule_set, rules in plan
                ]
                results = [future.result() for future in futures]
        else:
            results = [self._run_rule_set(rule_set, rules, dataset, indices) for rule_set, rules in plan]

        result = ValidationResult(counters={"records": dataset.record_count()}).merge(*results)

        logger.info(f"Validation completed: {'PASS' if result.success else 'FAIL'}")
        logger.info(f"Found {len(result.violations)} violations")
        return result

    def _run_rule_set(self, rule_set: RuleSet, rules: list[ValidationRule], dataset: Dataset,
                      indices: IndexSet) -> ValidationResult:
        result = ValidationResult()
        logger.debug(f"Executing rule set: {rule_set.name}")

        for rule in rules:
            logger.debug(f"Executing rule: {rule.name}")
            try:
                violations = rule.check(dataset, indices)
            except Exception as e:
                logger.error(f"Rule {rule.name} failed with error: {e}")
                result.add(Violation(
                    category=rule.category or rule_set.name,
                    message=f"Rule execution failed: {e}",
                    rule=rule.name,
                    domain=rule_set.domain,
                ))
                result.increment_counter("rule_errors")
                continue
            result.extend(violations)
            result.increment_counter("rules_run")

        result.increment_counter(f"violations.{rule_set.domain.value}", len(result.violations))
        return result


def validate(dataset: Dataset | Mapping[str, Any], domains: Iterable[Domain | str],
             config: DqgateConfig | None = None) -> ValidationResult:
    """Validate a dataset with the default rule sets of the given domains."""
    engine = ValidationEngine(config)
    return engine.validate(dataset, rule_sets_for(domains, engine.config))
