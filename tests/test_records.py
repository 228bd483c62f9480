"""
Tests for the sealed record classes.
"""
import pytest

from orgcheck.data.records import RECORD_CLASSES, DataRecord, RecordKind, SFDC_ApexClass, SFDC_Group
from orgcheck.exceptions import SchemaViolationError


class TestDataRecord:
    """Tests for the record base class."""

    def test_undeclared_input_keys_are_ignored(self):
        """Test the constructor drops keys the class does not declare."""
        group = SFDC_Group(id='00G000000000001', name='Sales', whatever='x')

        assert group.name == 'Sales'
        assert not hasattr(group, 'whatever')

    def test_missing_fields_default_to_none(self):
        """Test declared fields that were not given are None."""
        group = SFDC_Group(id='00G000000000001')

        assert group.nb_users is None
        assert group.score is None
        assert group.dependencies is None

    def test_assigning_undeclared_field_raises(self):
        """Test schema drift is caught on assignment."""
        apex_class = SFDC_ApexClass(id='01p000000000001')

        with pytest.raises(SchemaViolationError) as exc_info:
            apex_class.coverrage = 0.5

        assert 'coverrage' in str(exc_info.value)
        assert exc_info.value.context['what']['field'] == 'coverrage'

    def test_schema_violation_is_an_attribute_error(self):
        """Test callers catching AttributeError also see schema violations."""
        apex_class = SFDC_ApexClass(id='01p000000000001')

        with pytest.raises(AttributeError):
            apex_class.unknown = True

    def test_declared_fields_can_be_assigned(self):
        """Test scoring fields and declared fields are writable."""
        apex_class = SFDC_ApexClass(id='01p000000000001')
        apex_class.score = 2
        apex_class.coverage = 0.5

        assert apex_class.to_dict()['score'] == 2
        assert apex_class.to_dict()['coverage'] == 0.5

    def test_id_field_is_mandatory(self):
        """Test a record class without id cannot be declared."""
        with pytest.raises(TypeError):
            type('NoId', (DataRecord,), {'FIELDS': ('name',)})


class TestRecordClasses:
    """Tests for the kind registry."""

    def test_every_kind_has_a_class(self):
        """Test every RecordKind maps to exactly one record class."""
        assert set(RECORD_CLASSES) == set(RecordKind)
        for kind, cls in RECORD_CLASSES.items():
            assert cls.KIND is kind
