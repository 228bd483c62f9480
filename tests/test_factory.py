"""
Tests for the data factory: record creation, scoring and dependencies.
"""
import pytest

from orgcheck.data.factory import DataFactory
from orgcheck.data.records import RecordKind, SFDC_ObjectType
from orgcheck.dataset.metadata import LIGHTNING_AURA_COMPONENTS
from orgcheck.dependencies import DependencyEdge, DependencyGraph


def _edge(source, target, source_type='ApexClass', target_type='AuraDefinitionBundle'):
    return DependencyEdge(id=source, name=source, type=source_type, url=f'/{source}',
                          ref_id=target, ref_name=target, ref_type=target_type, ref_url=f'/{target}')


class TestDataFactory:
    """Tests for the per kind factory instances."""

    def test_instances_are_reused(self, factory):
        """Test one instance per kind."""
        assert factory.get_instance(RecordKind.GROUP) is factory.get_instance('group')

    def test_only_applicable_rules(self, factory):
        """Test an instance only holds the rules of its kind."""
        instance = factory.get_instance(RecordKind.AURA_COMPONENT)

        assert [rule.id for rule in instance.validations] == [3]

    def test_unknown_rule_id(self, factory):
        """Test an unknown rule id raises."""
        with pytest.raises(IndexError):
            factory.get_validation_rule(999)

    def test_kind_without_rule_has_no_score(self, factory):
        """Test records of kinds without rules keep None scoring fields."""
        record = factory.get_instance(RecordKind.OBJECT_TYPE).create_with_score({'id': 'StandardEntity'})

        assert isinstance(record, SFDC_ObjectType)
        assert record.score is None
        assert record.bad_reason_ids is None


class TestScoring:
    """Tests for compute_score."""

    def test_score_counts_violations(self, factory):
        """Test score, bad fields and reason ids of a weak password policy."""
        instance = factory.get_instance(RecordKind.PROFILE_PASSWORD_POLICY)

        record = instance.create_with_score({
            'id': 'Custom Profile', 'password_expiration': 0, 'password_history': 3,
            'minimum_password_length': 8, 'password_complexity': 3, 'max_login_attempts': None,
            'lockout_interval': 15, 'password_question': False
        })

        assert record.score == 2
        assert record.bad_reason_ids == [23, 27]
        assert record.bad_fields == ['password_expiration']

    def test_failing_rule_is_skipped(self, factory, caplog):
        """Test a rule that raises does not count and is logged."""
        instance = factory.get_instance(RecordKind.APEX_TRIGGER)

        record = instance.create_with_score({'id': 'x', 'length': 'not a number', 'is_active': False})

        assert 12 not in record.bad_reason_ids
        assert 31 in record.bad_reason_ids
        assert any('Rule 12' in message for message in caplog.messages)

    def test_dependencies_are_partitioned(self, factory):
        """Test records of dependency kinds get their own dependencies."""
        graph = DependencyGraph([_edge('01p000000000001', '0Ab000000000001'),
                                 _edge('0Ab000000000001', '0Ab000000000002', 'AuraDefinitionBundle')])
        instance = factory.get_instance(RecordKind.AURA_COMPONENT)

        record = instance.create({'id': '0Ab000000000001', 'description': 'x', 'all_dependencies': graph})

        assert [item.id for item in record.dependencies.referenced] == ['01p000000000001']
        assert [item.id for item in record.dependencies.using] == ['0Ab000000000002']
        assert record.dependencies.referenced_by_types == {'ApexClass': 1}

    def test_no_dependencies_when_graph_is_missing(self, factory):
        """Test a failed Dependency API call leaves dependencies unset."""
        instance = factory.get_instance(RecordKind.AURA_COMPONENT)

        record = instance.create({'id': '0Ab000000000001', 'all_dependencies': None})

        assert record.dependencies is None

    def test_version_check_is_injected(self):
        """Test the API version rule uses the injected check."""
        factory = DataFactory(lambda version: True)
        instance = factory.get_instance(RecordKind.APEX_TRIGGER)

        record = instance.create_with_score({'id': 'x', 'api_version': 60, 'is_active': True})

        assert record.bad_reason_ids == [1]


class TestEndToEnd:
    """Tests for a simple dataset from rows to scored records."""

    @pytest.mark.asyncio
    async def test_aura_components(self, transport, manager, factory):
        """Test ids are case safe, the description rule is scored and dependencies attached."""
        transport.add_query('FROM AuraDefinitionBundle', [
            {'Id': '0Ab000000000001AAA', 'MasterLabel': 'header', 'ApiVersion': 58.0,
             'NamespacePrefix': None, 'Description': None},
            {'Id': '0Ab000000000002AAA', 'MasterLabel': 'footer', 'ApiVersion': 58.0,
             'NamespacePrefix': 'ns', 'Description': 'Page footer'},
        ])

        def dependencies(sub_request):
            if sub_request['referenceId'] != '0Ab000000000002':
                return 200, {'done': True, 'totalSize': 0, 'records': []}
            return 200, {'done': True, 'totalSize': 1, 'records': [{
                'MetadataComponentId': '01p000000000009AAA', 'MetadataComponentName': 'FooterController',
                'MetadataComponentType': 'ApexClass', 'RefMetadataComponentId': '0Ab000000000002AAA',
                'RefMetadataComponentName': 'footer', 'RefMetadataComponentType': 'AuraDefinitionBundle'
            }]}
        transport.composite_handler = dependencies

        records = await LIGHTNING_AURA_COMPONENTS.run(manager, factory, {})

        assert set(records) == {'0Ab000000000001', '0Ab000000000002'}
        header = records['0Ab000000000001']
        assert header.score == 1
        assert header.bad_reason_ids == [3]
        assert header.bad_fields == ['description']
        assert header.package == ''
        assert header.dependencies.referenced == []
        footer = records['0Ab000000000002']
        assert footer.score == 0
        assert footer.package == 'ns'
        assert [item.name for item in footer.dependencies.referenced] == ['FooterController']
