"""
Provisioning of the Unix identities needed by the cluster: the service users
of the daemons, the login user matching the host user and one login user per
tenant, plus the admin group and the tenant work directories.

Every step is idempotent since the provisioning runs again at each container
start.
"""



import grp
import os
import pwd

from zope.interface import implementer

from twisted.internet import defer
from twisted.python import filepath

from slurmlocal import error, interfaces, logging, settings



NOLOGIN_SHELL = '/usr/sbin/nologin'

LOGIN_SHELL = '/bin/bash'

TENANTS_ROOT_MODE = 0o755

TENANT_DIR_MODE = 0o750



@implementer(interfaces.IAccountDatabase)
class SystemAccounts(object):
    """
    Account database backed by the ``pwd`` and ``grp`` modules for lookups
    and by the ``useradd`` family of commands for modifications.
    """

    def __init__(self, runner):
        self.runner = interfaces.ICommandRunner(runner)


    def userByName(self, name):
        try:
            entry = pwd.getpwnam(name)
        except KeyError:
            return None
        return entry.pw_name, entry.pw_uid, entry.pw_gid


    def userByUid(self, uid):
        try:
            entry = pwd.getpwuid(uid)
        except KeyError:
            return None
        return entry.pw_name, entry.pw_uid, entry.pw_gid


    def groupByName(self, name):
        try:
            entry = grp.getgrnam(name)
        except KeyError:
            return None
        return entry.gr_name, entry.gr_gid, list(entry.gr_mem)


    def groupByGid(self, gid):
        try:
            entry = grp.getgrgid(gid)
        except KeyError:
            return None
        return entry.gr_name, entry.gr_gid, list(entry.gr_mem)


    @defer.inlineCallbacks
    def execute(self, argv):
        output, code = yield self.runner.run(argv)

        if code:
            raise error.CommandFailed(argv, code, output)


    def addSystemUser(self, name, home):
        return self.execute(['useradd', '--system', '--create-home',
                '--home-dir', home, '--shell', NOLOGIN_SHELL, name])


    def addGroup(self, name, gid=None):
        argv = ['groupadd']
        if gid is not None:
            argv += ['-g', str(gid)]
        return self.execute(argv + [name])


    def addLoginUser(self, name, uid, gid, home):
        return self.execute(['useradd', '--uid', str(uid), '--gid', str(gid),
                '--create-home', '--home-dir', home, '--shell', LOGIN_SHELL,
                name])


    def addGroupMember(self, group, user):
        return self.execute(['usermod', '-aG', group, user])



class IdentityProvisioner(object):
    """
    Ensures that the identities required by the cluster exist.
    """

    def __init__(self, config, accounts, log=None):
        self.config = config
        self.accounts = interfaces.IAccountDatabase(accounts)
        self.log = log or logging.Logger(__name__, system='identity')


    def hostIdentity(self):
        """
        Returns the ``(name, uid, gid)`` of the login user matching the host
        user, or ``None`` if the name or one of the numeric ids is missing.
        """

        name = self.config.get('host', 'user')
        uid = settings.getNumber(self.config, 'host', 'uid')
        gid = settings.getNumber(self.config, 'host', 'gid')

        if name and uid is not None and gid is not None:
            return name, uid, gid

        return None


    @defer.inlineCallbacks
    def ensureServiceUser(self, name, home):
        """
        Creates the system user ``name`` unless a user with that name already
        exists. An existing user is accepted as is.
        """

        if self.accounts.userByName(name) is not None:
            self.log.debug('Service user {0!r} already exists', name)
            return

        self.log.info('Creating service user {0!r}', name)
        yield self.accounts.addSystemUser(name, home)


    @defer.inlineCallbacks
    def ensureLoginUser(self, name, uid, gid):
        """
        Creates the login user ``name`` with the given ``uid`` and ``gid``.

        Nothing happens if the user already exists. If ``uid`` belongs to
        another user, ``error.IdentityConflict`` is raised. The group owning
        ``gid`` is reused if it exists, otherwise a group called like the user
        is created.
        """

        if self.accounts.userByName(name) is not None:
            self.log.debug('Login user {0!r} already exists', name)
            return

        owner = self.accounts.userByUid(uid)

        if owner is not None:
            raise error.IdentityConflict('UID {0} already exists (owned by '
                    '{1!r}); cannot create user {2!r}'.format(uid, owner[0],
                            name))

        if self.accounts.groupByGid(gid) is None:
            group = self.accounts.groupByName(name)

            if group is None:
                yield self.accounts.addGroup(name, gid)
            else:
                raise error.IdentityConflict('Group {0!r} already exists with '
                        'GID {1}; cannot create user {0!r} with GID {2}'.format(
                                name, group[1], gid))

        self.log.info('Creating login user {0!r} ({1}:{2})', name, uid, gid)
        yield self.accounts.addLoginUser(name, uid, gid, '/home/' + name)


    @defer.inlineCallbacks
    def ensureAdminGroup(self, group, member=None):
        """
        Makes sure the admin group exists and contains ``member``. Failures
        are only logged.
        """

        try:
            if self.accounts.groupByName(group) is None:
                yield self.accounts.addGroup(group)

            if member and self.accounts.userByName(member) is not None:
                current = self.accounts.groupByName(group)
                if current is None or member not in current[2]:
                    yield self.accounts.addGroupMember(group, member)
        except error.CommandFailed as e:
            self.log.debug('Could not set up admin group {0!r}: {1}', group, e)


    def ensureTenantDirectories(self, tenants):
        """
        Creates one work directory per tenant below the tenants root, owned
        by the tenant and not accessible by other users. Failures are only
        logged.
        """

        if not tenants:
            return

        root = filepath.FilePath(self.config.get('tenants', 'root'))
        self.bestEffort(root.makedirs, ignoreExistingDirectory=True)
        self.bestEffort(root.chmod, TENANTS_ROOT_MODE)

        for tenant in tenants:
            directory = root.child(tenant.name)
            self.bestEffort(directory.makedirs, ignoreExistingDirectory=True)
            self.bestEffort(os.chown, directory.path, tenant.uid, tenant.gid)
            self.bestEffort(directory.chmod, TENANT_DIR_MODE)


    def bestEffort(self, func, *args, **kwargs):
        try:
            func(*args, **kwargs)
        except OSError as e:
            self.log.debug('Ignoring failed {0}: {1}', func.__name__, e)


    @defer.inlineCallbacks
    def provision(self, tenants):
        """
        Runs the whole provisioning sequence:

         1. the ``munge`` and ``slurm`` service users;
         2. the login user matching the host user (if configured);
         3. the admin group, with the host user as a member;
         4. one login user per tenant;
         5. the tenant work directories.
        """

        config = self.config

        yield self.ensureServiceUser(config.get('daemons', 'munge_user'),
                '/nonexistent')
        yield self.ensureServiceUser(config.get('daemons', 'slurm_user'),
                config.get('paths', 'slurm_home'))

        host = self.hostIdentity()

        if host is not None:
            yield self.ensureLoginUser(*host)

        adminGroup = config.get('accounting', 'admin_account')

        if adminGroup:
            yield self.ensureAdminGroup(adminGroup, host[0] if host else None)

        for tenant in tenants:
            yield self.ensureLoginUser(tenant.name, tenant.uid, tenant.gid)

        self.ensureTenantDirectories(tenants)
