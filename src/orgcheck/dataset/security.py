"""
Security & Access Datasets Module

Who can access the org and with which permissions: active users, profiles,
permission sets (and groups of permission sets), roles, public groups and
queues, profile password policies and profile login restrictions.

Data Sources:
    - User, PermissionSetAssignment (via standard API)
    - PermissionSet owned or not by a profile (via standard API)
    - UserRole, Group, GroupMember, Profile (via standard API)
    - ProfilePasswordPolicy (via Metadata API)
    - Profile Metadata field (via Tooling API, one record at a time)
"""
import ipaddress

from orgcheck.constants import WILDCARD
from orgcheck.data.records import RecordKind
from orgcheck.dataset.base import Dataset, build_records
from orgcheck.logger import logger
from orgcheck.salesforce_manager import SOQLQuery

IMPORTANT_PERMISSIONS = {
    'PermissionsApiEnabled': 'apiEnabled',
    'PermissionsViewSetup': 'viewSetup',
    'PermissionsModifyAllData': 'modifyAllData',
    'PermissionsViewAllData': 'viewAllData',
}

GROUP_TYPES = {
    'Regular': 'publicGroup',
    'Role': 'role',
    'Queue': 'queue',
    'RoleAndSubordinates': 'roleAndSub',
    'RoleAndSubordinatesInternal': 'roleAndSub',
}

WEEK_DAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

PROFILE_FIELDS = (
    'ProfileId, Profile.Name, Profile.Description, IsCustom, License.Name, NamespacePrefix, '
    'CreatedDate, LastModifiedDate, '
    '(SELECT Id FROM Assignments WHERE Assignee.IsActive = TRUE LIMIT 51), '
    '(SELECT Id FROM FieldPerms LIMIT 51), '
    '(SELECT Id FROM ObjectPerms LIMIT 51)'
)


def _subquery_records(row, relationship):
    return (row.get(relationship) or {}).get('records') or []


def _as_int(value):
    if value is None or value == '':
        return None
    return int(value)


def _as_bool(value):
    if isinstance(value, str):
        return value.lower() in ('true', '1')
    return bool(value) if value is not None else None


def _profile_values(row, record_id, name, description, url):
    return {
        'id': record_id,
        'url': url,
        'name': name,
        'description': description,
        'license': (row.get('License') or {}).get('Name'),
        'is_custom': row.get('IsCustom'),
        'package': row.get('NamespacePrefix') or '',
        'member_counts': len(_subquery_records(row, 'Assignments')),
        'nb_field_permissions': len(_subquery_records(row, 'FieldPerms')),
        'nb_object_permissions': len(_subquery_records(row, 'ObjectPerms')),
        'created_date': row.get('CreatedDate'),
        'last_modified_date': row.get('LastModifiedDate')
    }


class UsersDataset(Dataset):

    name = 'Users'

    query = SOQLQuery(
        text='SELECT Id, Name, SmallPhotoUrl, ProfileId, LastLoginDate, LastPasswordChangeDate, '
             'NumberOfFailedLogins, UserPreferencesLightningExperiencePreferred, '
             '(SELECT PermissionSetId, PermissionSet.PermissionsApiEnabled, '
             'PermissionSet.PermissionsViewSetup, PermissionSet.PermissionsModifyAllData, '
             'PermissionSet.PermissionsViewAllData, PermissionSet.IsOwnedByProfile '
             'FROM PermissionSetAssignments) '
             'FROM User WHERE Profile.Id != NULL AND IsActive = true'
    )

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        rows = []
        for row in result.records:
            important_permissions = set()
            permission_set_ids = []
            for assignment in _subquery_records(row, 'PermissionSetAssignments'):
                permission_set = assignment.get('PermissionSet') or {}
                for field, permission in IMPORTANT_PERMISSIONS.items():
                    if permission_set.get(field) is True:
                        important_permissions.add(permission)
                if permission_set.get('IsOwnedByProfile') is not True:
                    permission_set_ids.append(manager.case_safe_id(assignment['PermissionSetId']))
            user_id = manager.case_safe_id(row['Id'])
            rows.append({
                'id': user_id,
                'url': manager.setup_url('user', user_id),
                'photo_url': row.get('SmallPhotoUrl'),
                'name': row.get('Name'),
                'last_login': row.get('LastLoginDate'),
                'number_failed_logins': row.get('NumberOfFailedLogins'),
                'on_lightning_experience': row.get('UserPreferencesLightningExperiencePreferred'),
                'last_password_change': row.get('LastPasswordChangeDate'),
                'profile_id': manager.case_safe_id(row.get('ProfileId')),
                'important_permissions': sorted(important_permissions),
                'permission_set_ids': permission_set_ids
            })
        return build_records(factory.get_instance(RecordKind.USER), rows)


class ProfilesDataset(Dataset):

    name = 'Profiles'

    query = SOQLQuery(text=f'SELECT {PROFILE_FIELDS} FROM PermissionSet WHERE isOwnedByProfile = TRUE')

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        rows = []
        for row in result.records:
            profile = row.get('Profile') or {}
            profile_id = manager.case_safe_id(row['ProfileId'])
            rows.append(_profile_values(row, profile_id, profile.get('Name'),
                                        profile.get('Description'), manager.setup_url('profile', profile_id)))
        return build_records(factory.get_instance(RecordKind.PROFILE), rows)


class PermissionSetsDataset(Dataset):

    name = 'PermissionSets'

    queries = [
        SOQLQuery(text=f'SELECT Id, Name, Description, Type, {PROFILE_FIELDS} '
                       'FROM PermissionSet WHERE IsOwnedByProfile = FALSE'),
        SOQLQuery(text='SELECT Id, AssigneeId, Assignee.ProfileId, PermissionSetId '
                       'FROM PermissionSetAssignment '
                       'WHERE Assignee.IsActive = TRUE AND PermissionSet.IsOwnedByProfile = FALSE '
                       'ORDER BY PermissionSetId'),
        SOQLQuery(text='SELECT Id, PermissionSetGroupId, PermissionSetGroup.Description '
                       'FROM PermissionSet WHERE PermissionSetGroupId != null',
                  bypass_error_codes=('INVALID_TYPE',))
    ]

    async def run(self, manager, factory, parameters):
        permission_set_result, assignment_result, group_result = await manager.soql_query(self.queries)

        profile_ids = {}
        for row in assignment_result.records:
            assignee = row.get('Assignee') or {}
            if not assignee.get('ProfileId'):
                continue
            ids = profile_ids.setdefault(manager.case_safe_id(row['PermissionSetId']), [])
            profile_id = manager.case_safe_id(assignee['ProfileId'])
            if profile_id not in ids:
                ids.append(profile_id)

        groups = {}
        for row in group_result.records:
            groups[manager.case_safe_id(row['Id'])] = row

        rows = []
        for row in permission_set_result.records:
            permission_set_id = manager.case_safe_id(row['Id'])
            values = _profile_values(row, permission_set_id, row.get('Name'), row.get('Description'),
                                     manager.setup_url('permission-set', permission_set_id))
            values.update({
                'api_name': row.get('Name'),
                'type': row.get('Type'),
                'is_group': False,
                'profile_ids': profile_ids.get(permission_set_id, [])
            })
            group = groups.get(permission_set_id)
            if group is not None:
                group_id = manager.case_safe_id(group['PermissionSetGroupId'])
                values.update({
                    'is_group': True,
                    'group_id': group_id,
                    'url': manager.setup_url('permission-set-group', group_id)
                })
                if manager.is_empty(values['description']):
                    values['description'] = (group.get('PermissionSetGroup') or {}).get('Description')
            rows.append(values)
        return build_records(factory.get_instance(RecordKind.PERMISSION_SET), rows)


class UserRolesDataset(Dataset):

    name = 'UserRoles'

    query = SOQLQuery(text='SELECT Id, DeveloperName, Name, ParentRoleId, PortalType, '
                           '(SELECT Id, IsActive FROM Users) FROM UserRole')

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        rows = []
        for row in result.records:
            users = _subquery_records(row, 'Users')
            active_ids = [manager.case_safe_id(u['Id']) for u in users if u.get('IsActive') is True]
            inactive_count = len(users) - len(active_ids)
            role_id = manager.case_safe_id(row['Id'])
            rows.append({
                'id': role_id,
                'url': manager.setup_url('role', role_id),
                'name': row.get('Name'),
                'api_name': row.get('DeveloperName'),
                'parent_id': manager.case_safe_id(row.get('ParentRoleId')),
                'has_parent': row.get('ParentRoleId') is not None,
                'active_members_count': len(active_ids),
                'active_member_ids': active_ids,
                'has_active_members': len(active_ids) > 0,
                'inactive_members_count': inactive_count,
                'has_inactive_members': inactive_count > 0,
                'is_external': row.get('PortalType') != 'None'
            })
        return build_records(factory.get_instance(RecordKind.USER_ROLE), rows)


def count_users(group_id, direct_members):
    """Distinct users of a group, following sub groups (cycles included) transitively."""
    users = set()
    seen = set()
    stack = [group_id]
    while stack:
        current = stack.pop()
        if current in seen:
            continue
        seen.add(current)
        member_users, member_groups = direct_members.get(current, ((), ()))
        users.update(member_users)
        stack.extend(member_groups)
    return len(users)


class GroupsDataset(Dataset):

    name = 'Groups'

    queries = [
        SOQLQuery(text='SELECT Id, Name, DeveloperName, DoesIncludeBosses, Type, RelatedId, Related.Name '
                       'FROM Group'),
        SOQLQuery(text='SELECT Id, GroupId, UserOrGroupId FROM GroupMember')
    ]

    async def run(self, manager, factory, parameters):
        group_result, member_result = await manager.soql_query(self.queries)

        direct_members = {}
        for row in member_result.records:
            users, groups = direct_members.setdefault(manager.case_safe_id(row['GroupId']), ([], []))
            member_id = manager.case_safe_id(row['UserOrGroupId'])
            (users if member_id.startswith('005') else groups).append(member_id)

        rows = []
        for row in group_result.records:
            group_id = manager.case_safe_id(row['Id'])
            group_type = GROUP_TYPES.get(row.get('Type'), 'technical')
            values = {
                'id': group_id,
                'url': manager.setup_url(group_type, group_id),
                'name': row.get('Name'),
                'developer_name': row.get('DeveloperName'),
                'include_bosses': row.get('DoesIncludeBosses') is True,
                'type': group_type,
                'is_public_group': group_type == 'publicGroup',
                'is_queue': group_type == 'queue'
            }
            if group_type in ('role', 'roleAndSub'):
                values['related_id'] = manager.case_safe_id(row.get('RelatedId'))
            if values['is_public_group'] or values['is_queue']:
                users, groups = direct_members.get(group_id, ([], []))
                values.update({
                    'direct_user_ids': users,
                    'direct_group_ids': groups,
                    'nb_direct_members': len(users) + len(groups),
                    'nb_users': count_users(group_id, direct_members)
                })
            rows.append(values)
        return build_records(factory.get_instance(RecordKind.GROUP), rows)


class ProfilePasswordPoliciesDataset(Dataset):

    name = 'ProfilePasswordPolicies'

    async def run(self, manager, factory, parameters):
        response = await manager.read_metadata([{'type': 'ProfilePasswordPolicy', 'members': [WILDCARD]}])
        rows = []
        for member in response.get('ProfilePasswordPolicy') or []:
            rows.append({
                'id': member.get('fullName'),
                'profile_name': member.get('profile'),
                'lockout_interval': _as_int(member.get('lockoutInterval')),
                'max_login_attempts': _as_int(member.get('maxLoginAttempts')),
                'minimum_password_length': _as_int(member.get('minimumPasswordLength')),
                'minimum_password_lifetime': _as_bool(member.get('minimumPasswordLifetime')),
                'obscure': _as_bool(member.get('obscure')),
                'password_complexity': _as_int(member.get('passwordComplexity')),
                'password_expiration': _as_int(member.get('passwordExpiration')),
                'password_history': _as_int(member.get('passwordHistory')),
                'password_question': _as_bool(member.get('passwordQuestion'))
            })
        return build_records(factory.get_instance(RecordKind.PROFILE_PASSWORD_POLICY), rows)


def ip_range_values(ip_range):
    start, end = ip_range.get('startAddress'), ip_range.get('endAddress')
    try:
        difference = int(ipaddress.ip_address(end)) - int(ipaddress.ip_address(start))
    except ValueError:
        logger.warning("Unable to compute the size of the IP range %s - %s", start, end)
        difference = None
    return {
        'start_address': start,
        'end_address': end,
        'description': ip_range.get('description'),
        'difference': difference
    }


def login_hours_values(login_hours):
    hours = []
    for day in WEEK_DAYS:
        start, end = login_hours.get(f'{day}Start'), login_hours.get(f'{day}End')
        if start is None or end is None:
            continue
        from_time, to_time = int(start), int(end)
        hours.append({'day': day, 'from_time': from_time, 'to_time': to_time, 'difference': to_time - from_time})
    return hours


class ProfileRestrictionsDataset(Dataset):

    name = 'ProfileRestrictions'

    query = SOQLQuery(text='SELECT Id FROM Profile')

    async def run(self, manager, factory, parameters):
        result, = await manager.soql_query([self.query])
        ids = [manager.case_safe_id(row['Id']) for row in result.records]
        logger.debug("ProfileRestrictions: reading the metadata of %d profiles...", len(ids))
        records = await manager.read_metadata_at_scale('Profile', ids)
        rows = []
        for record in records:
            metadata = record.get('Metadata') or {}
            profile_id = manager.case_safe_id(record['Id'])
            rows.append({
                'id': profile_id,
                'profile_id': profile_id,
                'ip_ranges': [ip_range_values(r) for r in metadata.get('loginIpRanges') or []],
                'login_hours': login_hours_values(metadata.get('loginHours') or {})
            })
        return build_records(factory.get_instance(RecordKind.PROFILE_RESTRICTIONS), rows)


USERS = UsersDataset()
PROFILES = ProfilesDataset()
PERMISSION_SETS = PermissionSetsDataset()
USER_ROLES = UserRolesDataset()
GROUPS = GroupsDataset()
PROFILE_PASSWORD_POLICIES = ProfilePasswordPoliciesDataset()
PROFILE_RESTRICTIONS = ProfileRestrictionsDataset()
