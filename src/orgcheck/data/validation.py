"""
Validation Rules Module

Registry of the bad practices scored on every record. A rule applies to the
record kinds listed in its ``applicable`` set; its id is its position in the
registry, so reason ids stay stable as long as rules are only appended.

Rule formulas read record fields that may be None when Salesforce did not
return a value: comparisons are guarded so that a missing value does not
count as a violation.
"""
import math
from dataclasses import dataclass
from typing import Callable

from orgcheck.data.records import RecordKind as K

# Kinds whose records get a dependencies substructure from the Dependency API
DEPENDENCY_KINDS = frozenset({
    K.APEX_CLASS, K.APEX_TRIGGER, K.FIELD, K.CUSTOM_LABEL, K.FLOW, K.AURA_COMPONENT,
    K.LIGHTNING_PAGE, K.LIGHTNING_WEB_COMPONENT, K.VISUALFORCE_COMPONENT, K.VISUALFORCE_PAGE,
})


@dataclass(frozen=True)
class ValidationRule:
    id: int
    description: str
    formula: Callable
    error_message: str
    bad_field: str
    applicable: frozenset


def _is_empty(value):
    return value is None or (isinstance(value, str) and value.strip() == '') or \
        (isinstance(value, (list, tuple, dict)) and len(value) == 0)


def _greater(value, threshold):
    return value is not None and value > threshold


def _lower(value, threshold):
    return value is not None and value < threshold


def _not_referenced(d):
    return d.dependencies is not None and len(d.dependencies.referenced) == 0


def _no_coverage(d):
    return d.coverage is None or (isinstance(d.coverage, float) and math.isnan(d.coverage)) or not d.coverage


def _definitions(is_version_old):
    return [
        (
            'Not referenced anywhere',
            _not_referenced,
            'This component is not referenced anywhere (as we were told by the Dependency API). '
            'Please review the need to keep it in your org.',
            'dependencies.referenced',
            {K.APEX_CLASS, K.APEX_TRIGGER, K.FIELD, K.CUSTOM_LABEL, K.FLOW, K.LIGHTNING_PAGE,
             K.VISUALFORCE_COMPONENT, K.VISUALFORCE_PAGE}
        ), (
            'API Version too old',
            lambda d: is_version_old(d.api_version) is True,
            'The API version of this component is too old. Please update it to a newest version.',
            'api_version',
            {K.APEX_CLASS, K.APEX_TRIGGER}
        ), (
            'No assert in this Apex Test',
            lambda d: d.is_test is True and d.nb_system_asserts == 0,
            'This apex test does not contain any assert! Best practices force you to define asserts in tests.',
            'nb_system_asserts',
            {K.APEX_CLASS}
        ), (
            'No description',
            lambda d: _is_empty(d.description),
            'This component does not have a description. Best practices force you to use the Description '
            'field to give some informative context about why and how it is used/set/govern.',
            'description',
            {K.FLOW, K.LIGHTNING_PAGE, K.AURA_COMPONENT, K.LIGHTNING_WEB_COMPONENT, K.VISUALFORCE_PAGE,
             K.VISUALFORCE_COMPONENT, K.WORKFLOW}
        ), (
            'No description for custom component',
            lambda d: d.is_custom is True and _is_empty(d.description),
            'This custom component does not have a description. Best practices force you to use the '
            'Description field to give some informative context about why and how it is used/set/govern.',
            'description',
            {K.FIELD, K.PERMISSION_SET, K.PROFILE}
        ), (
            'No explicit sharing in apex class',
            lambda d: d.is_sharing_missing is True,
            'This Apex Class does not specify a sharing model. Best practices force you to specify with, '
            'without or inherit sharing to better control the visibility of the data you process in Apex.',
            'specified_sharing',
            {K.APEX_CLASS}
        ), (
            'Schedulable should be scheduled',
            lambda d: d.is_scheduled is False and d.is_schedulable is True,
            'This Apex Class implements Schedulable but is not scheduled. What is the point? '
            'Is this class still necessary?',
            'is_scheduled',
            {K.APEX_CLASS}
        ), (
            'Not able to compile class',
            lambda d: d.needs_recompilation is True,
            'This Apex Class can not be compiled for some reason. You should try to recompile it. If the '
            'issue remains you need to consider refactorying this class or the classes that it is using.',
            'name',
            {K.APEX_CLASS}
        ), (
            'No coverage for this class',
            _no_coverage,
            'This Apex Class does not have any code coverage. Consider launching the corresponding tests '
            'that will bring some coverage. If you do not know which test to launch just run them all!',
            'coverage',
            {K.APEX_CLASS}
        ), (
            'Coverage not enough',
            lambda d: _lower(d.coverage, 0.75),
            'This Apex Class does not have enough code coverage (less than 75% of lines are covered by '
            'successful unit tests). Maybe you ran not all the unit tests to cover this class entirely? '
            'If you did, then consider augmenting that coverage with new test methods.',
            'coverage',
            {K.APEX_CLASS}
        ), (
            'Apex trigger should not contain SOQL statement',
            lambda d: d.has_soql is True,
            'This Apex Trigger contains at least one SOQL statement. Best practices force you to move any '
            'SOQL statement in dedicated Apex Classes that you would call from the trigger.',
            'has_soql',
            {K.APEX_TRIGGER}
        ), (
            'Apex trigger should not contain DML action',
            lambda d: d.has_dml is True,
            'This Apex Trigger contains at least one DML action. Best practices force you to move any DML '
            'action in dedicated Apex Classes that you would call from the trigger.',
            'has_dml',
            {K.APEX_TRIGGER}
        ), (
            'Apex Trigger should not contain logic',
            lambda d: _greater(d.length, 5000),
            'Due to the massive number of source code in this Apex Trigger, we suspect that it contains '
            'logic. Best practices force you to move any logic in dedicated Apex Classes that you would '
            'call from the trigger.',
            'length',
            {K.APEX_TRIGGER}
        ), (
            'No direct member for this group',
            lambda d: d.nb_direct_members == 0,
            'This public group (or queue) does not contain any direct members (users or sub groups). '
            'Is it empty on purpose? Maybe you should review its use in your org...',
            'nb_direct_members',
            {K.GROUP}
        ), (
            'No user for this group',
            lambda d: d.nb_users == 0,
            'This public group (or queue) does not contain any users either directly or via a sub group. '
            'Is it empty as a result on purpose? Maybe you should review its use in your org...',
            'nb_users',
            {K.GROUP}
        ), (
            'Custom permset or profile with no member',
            lambda d: d.is_custom is True and d.member_counts == 0,
            'This custom permission set (or custom profile) has no members. Is it empty on purpose? '
            'Maybe you should review its use in your org...',
            'member_counts',
            {K.PERMISSION_SET, K.PROFILE}
        ), (
            'Role with no active users',
            lambda d: d.active_members_count == 0,
            'This role has no active users assigned to it. Is it on purpose? '
            'Maybe you should review its use in your org...',
            'active_members_count',
            {K.USER_ROLE}
        ), (
            'Active user not under LEX',
            lambda d: d.on_lightning_experience is False,
            "This user is still using Classic. Time to switch to Lightning for all your users, don't you think?",
            'on_lightning_experience',
            {K.USER}
        ), (
            'Active user never logged',
            lambda d: d.last_login is None,
            'This active user never logged yet. Time to optimize your licence cost!',
            'last_login',
            {K.USER}
        ), (
            'Workflow with no action',
            lambda d: d.has_action is False,
            'This workflow has no action, please review it and potentially remove it.',
            'has_action',
            {K.WORKFLOW}
        ), (
            'Workflow with empty time triggered list',
            lambda d: len(d.empty_time_triggers or ()) > 0,
            'This workflow is time triggered but with no time triggered action, please review it.',
            'empty_time_triggers',
            {K.WORKFLOW}
        ), (
            'Password policy with question containing password!',
            lambda d: d.password_question is True,
            'This profile password policy allows to have password in the question! Please change that '
            'setting as it is clearly a lack of security in your org!',
            'password_question',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'Password policy with too big expiration',
            lambda d: _greater(d.password_expiration, 90),
            'This profile password policy allows to have password that expires after 90 days. Please '
            'consider having a shorter period of time for expiration if you policy.',
            'password_expiration',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'Password policy with no expiration',
            lambda d: d.password_expiration == 0,
            'This profile password policy allows to have password that never expires. Why is that? Do you '
            'have this profile for technical users? Please reconsider this setting and use JWT '
            'authentication instead for technical users.',
            'password_expiration',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'Password history too small',
            lambda d: _lower(d.password_history, 3),
            'This profile password policy allows users to set their password with a too-short memory. '
            'Please increase this setting.',
            'password_history',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'Password minimum size too small',
            lambda d: _lower(d.minimum_password_length, 8),
            'This profile password policy allows users to set passwords with less than 8 characters. '
            'That minimum length is not strong enough. Please increase this setting.',
            'minimum_password_length',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'Password complexity too weak',
            lambda d: _lower(d.password_complexity, 3),
            'This profile password policy allows users to set too-easy passwords. The complexity you '
            'choose is not strong enough. Please increase this setting.',
            'password_complexity',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'No max login attempts set',
            lambda d: d.max_login_attempts is None,
            'This profile password policy allows users to try infinitely to log in without locking the '
            'access. Please review this setting.',
            # Reported on password_expiration, not max_login_attempts
            'password_expiration',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'No lockout period set',
            lambda d: d.lockout_interval is None,
            'This profile password policy does not set a value for any locked out period. '
            'Please review this setting.',
            'lockout_interval',
            {K.PROFILE_PASSWORD_POLICY}
        ), (
            'IP Range too large',
            lambda d: any(_greater(r.get('difference'), 100000) for r in d.ip_ranges or ()),
            'This profile includes an IP range that is to wide (more than 100.000 IP addresses!). If you '
            'set an IP Range it should be not that large. Please review this setting.',
            'ip_ranges',
            {K.PROFILE_RESTRICTIONS}
        ), (
            'Login hours too large',
            lambda d: any(_greater(h.get('difference'), 1200) for h in d.login_hours or ()),
            'This profile includes a login hour that is to wide (more than 20 hours a day!). If you set a '
            'login hour it should reflect the reality. Please review this setting.',
            'login_hours',
            {K.PROFILE_RESTRICTIONS}
        ), (
            'Inactive component',
            lambda d: d.is_active is False,
            'This component is inactive, so why do not you just remove it from your org?',
            'is_active',
            {K.VALIDATION_RULE, K.RECORD_TYPE, K.APEX_TRIGGER}
        ), (
            'Near the limit',
            lambda d: d.used_percentage is not None and d.used_percentage >= 0.80,
            'This limit is almost reached (>80%). Please review this.',
            'used_percentage',
            {K.LIMIT}
        ),
    ]


def build_validation_rules(is_version_old):
    """
    Build the registry.

    Args:
        is_version_old: Callable telling whether an API version is too old

    Returns:
        tuple: ValidationRule instances, ids in registration order
    """
    return tuple(
        ValidationRule(id=i, description=description, formula=formula, error_message=message,
                       bad_field=bad_field, applicable=frozenset(applicable))
        for i, (description, formula, message, bad_field, applicable) in enumerate(_definitions(is_version_old))
    )
