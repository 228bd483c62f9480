"""
Org Check API Module

Entry point for callers: wires the query client, the entity factory and the
dataset manager on top of one Salesforce transport, and exposes one coroutine
per question a caller can ask about the org.

Each ``get_*`` method runs the datasets it needs (served from the cache when
possible), resolves the references between records (e.g. the profile of a
user) and applies its filters. A filter value of '*' means "no filter".

Functions:
    - version: Software version
    - get_cache_information / remove_cache / remove_all_cache: Cache administration
    - get_daily_api_request_limit_information: Daily API quota traffic light
    - run_datasets: Raw access to the dataset manager
    - get_*: Per domain views of the datasets
"""
from orgcheck.constants import (DAILY_API_REQUEST_FATAL_THRESHOLD,
                                DAILY_API_REQUEST_WARNING_THRESHOLD,
                                SOFTWARE_VERSION, WILDCARD)
from orgcheck.cache import DatasetCache
from orgcheck.data.factory import DataFactory
from orgcheck.dataset_manager import DatasetManager, DatasetRequest
from orgcheck.exceptions import OrgCheckError
from orgcheck.logger import logger
from orgcheck.salesforce_manager import SalesforceManager


def _matches(value, expected):
    return expected == WILDCARD or value == expected


def _by_namespace(records, namespace):
    return [r for r in records.values() if _matches(r.package, namespace)]


class OrgCheckAPI:
    """
    Audit engine facade.

    Args:
        transport: SalesforceTransport (or any object with the same methods)
        cache_storage: Mutable mapping holding the cache entries (a new dict when None)
        warning_threshold: Daily API usage ratio turning the traffic light yellow
        fatal_threshold: Daily API usage ratio above which calls are refused
    """

    def __init__(self, transport, cache_storage=None,
                 warning_threshold=DAILY_API_REQUEST_WARNING_THRESHOLD,
                 fatal_threshold=DAILY_API_REQUEST_FATAL_THRESHOLD):
        self.sfdc_manager = SalesforceManager(transport, warning_threshold=warning_threshold,
                                              fatal_threshold=fatal_threshold)
        self.factory = DataFactory(self.sfdc_manager.is_version_old)
        self.dataset_manager = DatasetManager(self.sfdc_manager, self.factory, DatasetCache(cache_storage))

    # Administration

    @staticmethod
    def version():
        return SOFTWARE_VERSION

    def get_cache_information(self):
        return self.dataset_manager.get_cache_information()

    def remove_cache(self, name):
        return self.dataset_manager.remove_cache(name)

    def remove_all_cache(self):
        return self.dataset_manager.remove_all_cache()

    def get_daily_api_request_limit_information(self):
        return self.sfdc_manager.get_daily_api_request_limit_information()

    def get_validation_rule(self, rule_id):
        """Return the ValidationRule of a bad reason id, None when the id is unknown."""
        try:
            return self.factory.get_validation_rule(rule_id)
        except IndexError:
            logger.warning("Unknown validation rule id: %s", rule_id)
            return None

    async def run_datasets(self, requests):
        return await self.dataset_manager.run(requests)

    # Org

    async def get_org_information(self):
        results = await self.run_datasets(['OrgInformation'])
        return next(iter(results['OrgInformation'].values()), None)

    async def get_packages_types_and_objects(self, namespace=WILDCARD, sobject_type=WILDCARD):
        logger.info("Extracting packages, object types and objects...")
        results = await self.run_datasets(['Packages', 'ObjectTypes', 'Objects'])
        types = results['ObjectTypes']
        logger.info("Transforming %d objects...", len(results['Objects']))
        objects = []
        for sobject in results['Objects'].values():
            sobject.type_ref = types.get(sobject.type_id)
            if _matches(sobject.package, namespace) and _matches(sobject.type_id, sobject_type):
                objects.append(sobject)
        return {
            'packages': list(results['Packages'].values()),
            'types': list(types.values()),
            'objects': sorted(objects, key=lambda o: (o.label or '').lower())
        }

    async def get_object(self, sobject):
        if not sobject or sobject == WILDCARD:
            raise OrgCheckError('An object name is required to get the detail of an object',
                                {'when': 'Before retrieving the detail of an object', 'what': {'object': sobject}})
        request = DatasetRequest('Object', parameters={'object': sobject})
        results = await self.run_datasets([request, 'ObjectTypes'])
        record = results['Object']
        record.type_ref = results['ObjectTypes'].get(record.type_id)
        return record

    async def get_org_limits(self):
        results = await self.run_datasets(['OrgLimits'])
        return list(results['OrgLimits'].values())

    # Metadata components

    async def get_custom_fields(self, namespace=WILDCARD, object_type=WILDCARD, sobject=WILDCARD):
        logger.info("Extracting custom fields, object types and objects...")
        results = await self.run_datasets(['CustomFields', 'ObjectTypes', 'Objects'])
        types, objects = results['ObjectTypes'], results['Objects']
        logger.info("Transforming %d custom fields...", len(results['CustomFields']))
        fields = []
        for field in results['CustomFields'].values():
            object_ref = objects.get(field.object_id)
            field.object_ref = object_ref
            if object_ref is not None and object_ref.type_ref is None:
                object_ref.type_ref = types.get(object_ref.type_id)
            if not _matches(field.package, namespace):
                continue
            if not _matches(object_ref.type_id if object_ref else None, object_type):
                continue
            if not _matches(object_ref.api_name if object_ref else None, sobject):
                continue
            fields.append(field)
        return fields

    async def get_custom_labels(self, namespace=WILDCARD):
        results = await self.run_datasets(['CustomLabels'])
        return _by_namespace(results['CustomLabels'], namespace)

    async def get_lightning_pages(self, namespace=WILDCARD):
        results = await self.run_datasets(['LightningPages'])
        return _by_namespace(results['LightningPages'], namespace)

    async def get_lightning_aura_components(self, namespace=WILDCARD):
        results = await self.run_datasets(['LightningAuraComponents'])
        return _by_namespace(results['LightningAuraComponents'], namespace)

    async def get_lightning_web_components(self, namespace=WILDCARD):
        results = await self.run_datasets(['LightningWebComponents'])
        return _by_namespace(results['LightningWebComponents'], namespace)

    async def get_visualforce_pages(self, namespace=WILDCARD):
        results = await self.run_datasets(['VisualForcePages'])
        return _by_namespace(results['VisualForcePages'], namespace)

    async def get_visualforce_components(self, namespace=WILDCARD):
        results = await self.run_datasets(['VisualForceComponents'])
        return _by_namespace(results['VisualForceComponents'], namespace)

    async def get_static_resources(self, namespace=WILDCARD):
        results = await self.run_datasets(['StaticResources'])
        return _by_namespace(results['StaticResources'], namespace)

    async def get_apex_classes(self, namespace=WILDCARD):
        results = await self.run_datasets(['ApexClasses'])
        return _by_namespace(results['ApexClasses'], namespace)

    async def get_apex_triggers(self, namespace=WILDCARD):
        results = await self.run_datasets(['ApexTriggers'])
        return _by_namespace(results['ApexTriggers'], namespace)

    # Automation

    async def get_flows(self):
        results = await self.run_datasets(['Flows'])
        return list(results['Flows'].values())

    async def get_workflows(self):
        results = await self.run_datasets(['Workflows'])
        return list(results['Workflows'].values())

    # Security

    async def get_profiles(self, namespace=WILDCARD):
        results = await self.run_datasets(['Profiles'])
        return _by_namespace(results['Profiles'], namespace)

    async def get_permission_sets(self, namespace=WILDCARD):
        logger.info("Extracting permission sets and profiles...")
        results = await self.run_datasets(['PermissionSets', 'Profiles'])
        profiles = results['Profiles']
        logger.info("Transforming %d permission sets...", len(results['PermissionSets']))
        permission_sets = []
        for permission_set in results['PermissionSets'].values():
            permission_set.profile_refs = [profiles[i] for i in permission_set.profile_ids or [] if i in profiles]
            if _matches(permission_set.package, namespace):
                permission_sets.append(permission_set)
        return permission_sets

    async def get_active_users(self):
        logger.info("Extracting users, profiles and permission sets...")
        results = await self.run_datasets(['Users', 'Profiles', 'PermissionSets'])
        profiles, permission_sets = results['Profiles'], results['PermissionSets']
        logger.info("Transforming %d users...", len(results['Users']))
        users = list(results['Users'].values())
        for user in users:
            user.profile_ref = profiles.get(user.profile_id)
            user.permission_set_refs = [permission_sets[i] for i in user.permission_set_ids or []
                                        if i in permission_sets]
        return users

    async def get_roles(self):
        results = await self.run_datasets(['UserRoles'])
        return list(results['UserRoles'].values())

    async def get_public_groups(self):
        results = await self.run_datasets(['Groups'])
        return [g for g in results['Groups'].values() if g.is_public_group]

    async def get_queues(self):
        results = await self.run_datasets(['Groups'])
        return [g for g in results['Groups'].values() if g.is_queue]

    async def get_profile_password_policies(self):
        results = await self.run_datasets(['ProfilePasswordPolicies'])
        return list(results['ProfilePasswordPolicies'].values())

    async def get_profile_restrictions(self):
        results = await self.run_datasets(['ProfileRestrictions', 'Profiles'])
        profiles = results['Profiles']
        restrictions = list(results['ProfileRestrictions'].values())
        for restriction in restrictions:
            restriction.profile_ref = profiles.get(restriction.profile_id)
        return restrictions
