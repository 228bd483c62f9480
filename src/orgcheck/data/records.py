"""
Entity Records Module

One sealed record class per kind of Salesforce component. A record only holds
the fields its class declares: the constructor ignores any other input key, and
assigning an undeclared attribute afterwards raises SchemaViolationError so
that schema drift is caught where it happens.

Every record also declares the scoring fields (score, bad_fields,
bad_reason_ids) and the dependencies field; they stay None until the
DataFactory fills them.
"""
from enum import Enum

from orgcheck.exceptions import SchemaViolationError


class RecordKind(str, Enum):
    """Capability tag of a record class, used by the validation rule registry."""

    ORGANIZATION = 'organization'
    PACKAGE = 'package'
    OBJECT_TYPE = 'object-type'
    OBJECT = 'object'
    FIELD = 'field'
    FIELD_SET = 'field-set'
    PAGE_LAYOUT = 'page-layout'
    VALIDATION_RULE = 'validation-rule'
    WEB_LINK = 'web-link'
    RECORD_TYPE = 'record-type'
    OBJECT_RELATIONSHIP = 'object-relationship'
    LIMIT = 'limit'
    CUSTOM_LABEL = 'custom-label'
    APEX_CLASS = 'apex-class'
    APEX_TRIGGER = 'apex-trigger'
    FLOW = 'flow'
    WORKFLOW = 'workflow'
    USER = 'user'
    PROFILE = 'profile'
    PERMISSION_SET = 'permission-set'
    USER_ROLE = 'user-role'
    GROUP = 'group'
    LIGHTNING_PAGE = 'lightning-page'
    AURA_COMPONENT = 'aura-component'
    LIGHTNING_WEB_COMPONENT = 'lightning-web-component'
    VISUALFORCE_PAGE = 'visualforce-page'
    VISUALFORCE_COMPONENT = 'visualforce-component'
    STATIC_RESOURCE = 'static-resource'
    PROFILE_PASSWORD_POLICY = 'profile-password-policy'
    PROFILE_RESTRICTIONS = 'profile-restrictions'


SCORING_FIELDS = ('score', 'bad_fields', 'bad_reason_ids', 'dependencies')


class DataRecord:
    """Base class of the sealed records."""

    KIND = None
    FIELDS = ()
    _allowed = frozenset(SCORING_FIELDS)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if 'id' not in cls.FIELDS:
            raise TypeError(f'{cls.__name__} must declare an id field')
        cls._allowed = frozenset(cls.FIELDS + SCORING_FIELDS)

    def __init__(self, **values):
        for name in self.FIELDS + SCORING_FIELDS:
            object.__setattr__(self, name, values.get(name))

    def __setattr__(self, name, value):
        if name not in self._allowed:
            raise SchemaViolationError(
                f"'{type(self).__name__}' has no field '{name}'",
                {'when': 'While setting a record field', 'what': {'kind': self.KIND, 'field': name}}
            )
        object.__setattr__(self, name, value)

    def to_dict(self):
        return {name: getattr(self, name) for name in self.FIELDS + SCORING_FIELDS}

    def __repr__(self):
        return f'{type(self).__name__}(id={self.id!r})'


class SFDC_Organization(DataRecord):
    KIND = RecordKind.ORGANIZATION
    FIELDS = ('id', 'name', 'type', 'is_production', 'local_namespace')


class SFDC_Package(DataRecord):
    KIND = RecordKind.PACKAGE
    FIELDS = ('id', 'name', 'namespace', 'type')


class SFDC_ObjectType(DataRecord):
    KIND = RecordKind.OBJECT_TYPE
    FIELDS = ('id', 'label')


class SFDC_Object(DataRecord):
    KIND = RecordKind.OBJECT
    FIELDS = ('id', 'label', 'label_plural', 'is_custom', 'is_feed_enabled', 'is_most_recent_enabled',
              'is_searchable', 'key_prefix', 'name', 'api_name', 'url', 'package', 'type_id', 'type_ref',
              'description', 'external_sharing_model', 'internal_sharing_model', 'apex_triggers',
              'field_sets', 'limits', 'layouts', 'validation_rules', 'web_links', 'fields',
              'record_types', 'relationships', 'record_count')


class SFDC_Field(DataRecord):
    KIND = RecordKind.FIELD
    FIELDS = ('id', 'url', 'name', 'label', 'package', 'description', 'created_date', 'last_modified_date',
              'object_id', 'object_ref', 'is_custom', 'tooltip', 'type', 'length', 'is_unique',
              'is_encrypted', 'is_external_id', 'default_value', 'formula')


class SFDC_FieldSet(DataRecord):
    KIND = RecordKind.FIELD_SET
    FIELDS = ('id', 'label', 'description', 'url')


class SFDC_PageLayout(DataRecord):
    KIND = RecordKind.PAGE_LAYOUT
    FIELDS = ('id', 'name', 'type', 'url')


class SFDC_ValidationRule(DataRecord):
    KIND = RecordKind.VALIDATION_RULE
    FIELDS = ('id', 'name', 'is_active', 'description', 'error_display_field', 'error_message', 'url')


class SFDC_WebLink(DataRecord):
    KIND = RecordKind.WEB_LINK
    FIELDS = ('id', 'name', 'url')


class SFDC_RecordType(DataRecord):
    KIND = RecordKind.RECORD_TYPE
    FIELDS = ('id', 'name', 'developer_name', 'url', 'is_active', 'is_available',
              'is_default_record_type_mapping', 'is_master')


class SFDC_ObjectRelationship(DataRecord):
    KIND = RecordKind.OBJECT_RELATIONSHIP
    FIELDS = ('id', 'name', 'child_object', 'field_name', 'is_cascade_delete', 'is_restricted_delete')


class SFDC_Limit(DataRecord):
    KIND = RecordKind.LIMIT
    FIELDS = ('id', 'label', 'max', 'remaining', 'used', 'used_percentage', 'type')


class SFDC_CustomLabel(DataRecord):
    KIND = RecordKind.CUSTOM_LABEL
    FIELDS = ('id', 'url', 'name', 'package', 'category', 'is_protected', 'language', 'label', 'value',
              'created_date', 'last_modified_date')


class SFDC_ApexClass(DataRecord):
    KIND = RecordKind.APEX_CLASS
    FIELDS = ('id', 'url', 'name', 'api_version', 'package', 'is_test', 'is_abstract', 'is_class',
              'is_enum', 'is_interface', 'is_schedulable', 'is_scheduled', 'is_sharing_missing',
              'specified_sharing', 'specified_access', 'inner_classes_count', 'interfaces',
              'methods_count', 'annotations', 'length', 'needs_recompilation', 'coverage',
              'related_test_class_ids', 'nb_system_asserts', 'created_date', 'last_modified_date')


class SFDC_ApexTrigger(DataRecord):
    KIND = RecordKind.APEX_TRIGGER
    FIELDS = ('id', 'url', 'name', 'api_version', 'package', 'length', 'is_active', 'before_insert',
              'after_insert', 'before_update', 'after_update', 'before_delete', 'after_delete',
              'after_undelete', 'object_id', 'has_soql', 'has_dml', 'created_date', 'last_modified_date')


class SFDC_Flow(DataRecord):
    KIND = RecordKind.FLOW
    FIELDS = ('id', 'url', 'name', 'definition_id', 'definition_name', 'version', 'api_version',
              'dml_creates', 'dml_deletes', 'dml_updates', 'is_active', 'description', 'type',
              'sobject', 'trigger_type', 'created_date', 'last_modified_date')


class SFDC_Workflow(DataRecord):
    KIND = RecordKind.WORKFLOW
    FIELDS = ('id', 'url', 'name', 'description', 'actions', 'future_actions', 'empty_time_triggers',
              'is_active', 'has_action', 'created_date', 'last_modified_date')


class SFDC_User(DataRecord):
    KIND = RecordKind.USER
    FIELDS = ('id', 'url', 'photo_url', 'name', 'last_login', 'number_failed_logins',
              'on_lightning_experience', 'last_password_change', 'profile_id', 'profile_ref',
              'important_permissions', 'permission_set_ids', 'permission_set_refs')


class SFDC_Profile(DataRecord):
    KIND = RecordKind.PROFILE
    FIELDS = ('id', 'url', 'name', 'api_name', 'description', 'license', 'is_custom', 'package',
              'member_counts', 'created_date', 'last_modified_date', 'nb_field_permissions',
              'nb_object_permissions', 'type')


class SFDC_PermissionSet(DataRecord):
    KIND = RecordKind.PERMISSION_SET
    FIELDS = SFDC_Profile.FIELDS + ('is_group', 'group_id', 'profile_ids', 'profile_refs')


class SFDC_UserRole(DataRecord):
    KIND = RecordKind.USER_ROLE
    FIELDS = ('id', 'url', 'name', 'api_name', 'parent_id', 'has_parent', 'active_members_count',
              'active_member_ids', 'has_active_members', 'inactive_members_count',
              'has_inactive_members', 'is_external')


class SFDC_Group(DataRecord):
    KIND = RecordKind.GROUP
    FIELDS = ('id', 'url', 'name', 'developer_name', 'include_bosses', 'type', 'related_id',
              'nb_direct_members', 'direct_user_ids', 'direct_group_ids', 'nb_users',
              'is_public_group', 'is_queue')


class SFDC_LightningPage(DataRecord):
    KIND = RecordKind.LIGHTNING_PAGE
    FIELDS = ('id', 'url', 'name', 'api_version', 'package', 'type', 'object_id', 'description',
              'created_date', 'last_modified_date')


class SFDC_LightningAuraComponent(DataRecord):
    KIND = RecordKind.AURA_COMPONENT
    FIELDS = ('id', 'url', 'name', 'api_version', 'package', 'description', 'created_date',
              'last_modified_date')


class SFDC_LightningWebComponent(DataRecord):
    KIND = RecordKind.LIGHTNING_WEB_COMPONENT
    FIELDS = SFDC_LightningAuraComponent.FIELDS


class SFDC_VisualForcePage(DataRecord):
    KIND = RecordKind.VISUALFORCE_PAGE
    FIELDS = ('id', 'url', 'name', 'api_version', 'package', 'description', 'is_mobile_ready',
              'created_date', 'last_modified_date')


class SFDC_VisualForceComponent(DataRecord):
    KIND = RecordKind.VISUALFORCE_COMPONENT
    FIELDS = SFDC_LightningAuraComponent.FIELDS


class SFDC_StaticResource(DataRecord):
    KIND = RecordKind.STATIC_RESOURCE
    FIELDS = ('id', 'url', 'name', 'package', 'content_type', 'created_date', 'last_modified_date')


class SFDC_ProfilePasswordPolicy(DataRecord):
    KIND = RecordKind.PROFILE_PASSWORD_POLICY
    FIELDS = ('id', 'profile_name', 'last_modified_date', 'lockout_interval', 'max_login_attempts',
              'minimum_password_length', 'minimum_password_lifetime', 'obscure', 'password_complexity',
              'password_expiration', 'password_history', 'password_question')


class SFDC_ProfileRestrictions(DataRecord):
    KIND = RecordKind.PROFILE_RESTRICTIONS
    FIELDS = ('id', 'profile_id', 'profile_ref', 'ip_ranges', 'login_hours')


RECORD_CLASSES = {cls.KIND: cls for cls in DataRecord.__subclasses__()}
