"""
Data Factory Module

Builds sealed records from raw values and scores them against the validation
rules that apply to their kind.

Functions:
    - DataFactory.get_instance: Per kind factory (created once, then reused)
    - DataFactoryInstance.create: Record from raw values, dependencies attached
    - DataFactoryInstance.compute_score: Evaluate the applicable rules on a record
    - DataFactoryInstance.create_with_score: Both of the above
"""
from orgcheck.data.records import RECORD_CLASSES, RecordKind
from orgcheck.data.validation import DEPENDENCY_KINDS, build_validation_rules
from orgcheck.logger import logger


class DataFactoryInstance:

    def __init__(self, record_class, validations, is_dependencies_needed):
        self.record_class = record_class
        self.validations = validations
        self.is_dependencies_needed = is_dependencies_needed

    def create(self, raw):
        """
        Create a record.

        Args:
            raw: dict of field values (ids already case safe); keys the record class does
                 not declare are ignored.
                 An 'all_dependencies' DependencyGraph is partitioned relative to the record id.

        Returns:
            DataRecord: The sealed record, with score fields initialized when rules apply
        """
        record = self.record_class(**raw)
        if self.validations:
            record.score = 0
            record.bad_fields = []
            record.bad_reason_ids = []
        all_dependencies = raw.get('all_dependencies')
        if self.is_dependencies_needed and all_dependencies is not None:
            record.dependencies = all_dependencies.partition(record.id)
        return record

    def compute_score(self, record):
        for rule in self.validations:
            try:
                violated = rule.formula(record)
            # pylint: disable=broad-except
            except Exception as e:
                logger.error("Rule %s (%s) failed on %s %s: %s",
                             rule.id, rule.description, record.KIND.value, record.id, e)
                continue
            if violated:
                record.score += 1
                if rule.bad_field not in record.bad_fields:
                    record.bad_fields.append(rule.bad_field)
                record.bad_reason_ids.append(rule.id)
        return record

    def create_with_score(self, raw):
        return self.compute_score(self.create(raw))


class DataFactory:
    """Holds the validation rules and hands out one DataFactoryInstance per record kind."""

    def __init__(self, is_version_old):
        self.validations = build_validation_rules(is_version_old)
        self._instances = {}

    def get_validation_rule(self, rule_id):
        return self.validations[rule_id]

    def get_instance(self, kind):
        kind = RecordKind(kind)
        if kind not in self._instances:
            self._instances[kind] = DataFactoryInstance(
                RECORD_CLASSES[kind],
                tuple(v for v in self.validations if kind in v.applicable),
                kind in DEPENDENCY_KINDS
            )
        return self._instances[kind]
