
from slurmlocal import error, identity
from slurmlocal.tenants import TenantSpec
from slurmlocal.test import helpers

from twisted.internet import defer
from twisted.trial import unittest
from twisted.python import filepath



class SystemAccountsTestCase(unittest.TestCase):

    def setUp(self):
        self.runner = helpers.FakeRunner({('usermod',): (b'boom', 6)})
        self.accounts = identity.SystemAccounts(self.runner)


    def test_lookups(self):
        root = self.accounts.userByUid(0)

        self.assertEqual(root[1], 0)
        self.assertEqual(self.accounts.userByName(root[0]), root)
        self.assertIdentical(self.accounts.userByName('no such user!'), None)
        self.assertIdentical(self.accounts.groupByName('no such group!'),
                None)


    @defer.inlineCallbacks
    def test_commands(self):
        yield self.accounts.addSystemUser('slurm', '/var/lib/slurm')
        yield self.accounts.addGroup('admin')
        yield self.accounts.addGroup('teama', 10000)
        yield self.accounts.addLoginUser('teama', 10000, 10000,
                '/home/teama')

        self.assertEqual(self.runner.commands, [
            ['useradd', '--system', '--create-home', '--home-dir',
                    '/var/lib/slurm', '--shell', '/usr/sbin/nologin', 'slurm'],
            ['groupadd', 'admin'],
            ['groupadd', '-g', '10000', 'teama'],
            ['useradd', '--uid', '10000', '--gid', '10000', '--create-home',
                    '--home-dir', '/home/teama', '--shell', '/bin/bash',
                    'teama'],
        ])


    def test_failure(self):
        d = self.accounts.addGroupMember('admin', 'alice')
        return self.assertFailure(d, error.CommandFailed)



class IdentityProvisionerTestCase(unittest.TestCase):

    def setUp(self):
        self.config = helpers.makeConfig(self, daemons_munge_user='munge',
                daemons_slurm_user='slurm')
        self.accounts = helpers.FakeAccounts()
        self.provisioner = identity.IdentityProvisioner(self.config,
                self.accounts)


    def test_hostIdentity(self):
        self.assertIdentical(self.provisioner.hostIdentity(), None)

        self.config.set('host', 'user', 'alice')
        self.config.set('host', 'uid', '501')
        self.assertIdentical(self.provisioner.hostIdentity(), None)

        self.config.set('host', 'gid', 'staff')
        self.assertIdentical(self.provisioner.hostIdentity(), None)

        self.config.set('host', 'gid', '20')
        self.assertEqual(self.provisioner.hostIdentity(), ('alice', 501, 20))


    @defer.inlineCallbacks
    def test_serviceUsersCreatedOnce(self):
        yield self.provisioner.provision([])
        yield self.provisioner.provision([])

        created = [c for c in self.accounts.calls if c[0] == 'addSystemUser']

        self.assertEqual(created, [
            ('addSystemUser', 'munge', '/nonexistent'),
            ('addSystemUser', 'slurm', self.config.get('paths',
                    'slurm_home')),
        ])


    @defer.inlineCallbacks
    def test_loginUserWithNewGroup(self):
        yield self.provisioner.ensureLoginUser('teama', 10000, 10001)

        self.assertEqual(self.accounts.calls, [
            ('addGroup', 'teama', 10001),
            ('addLoginUser', 'teama', 10000, 10001, '/home/teama'),
        ])


    @defer.inlineCallbacks
    def test_loginUserReusesGroup(self):
        self.accounts.groups['staff'] = ['staff', 20, []]

        yield self.provisioner.ensureLoginUser('alice', 501, 20)

        self.assertEqual(self.accounts.calls, [
            ('addLoginUser', 'alice', 501, 20, '/home/alice'),
        ])


    @defer.inlineCallbacks
    def test_existingLoginUser(self):
        self.accounts.users['alice'] = ('alice', 600, 600)

        yield self.provisioner.ensureLoginUser('alice', 501, 20)

        self.assertEqual(self.accounts.calls, [])


    def test_uidConflict(self):
        self.accounts.users['bob'] = ('bob', 501, 501)

        d = self.provisioner.ensureLoginUser('alice', 501, 20)
        return self.assertFailure(d, error.IdentityConflict)


    def test_groupConflict(self):
        self.accounts.groups['alice'] = ['alice', 77, []]

        d = self.provisioner.ensureLoginUser('alice', 501, 20)
        return self.assertFailure(d, error.IdentityConflict)


    @defer.inlineCallbacks
    def test_adminGroup(self):
        self.config.set('host', 'user', 'alice')
        self.config.set('host', 'uid', '501')
        self.config.set('host', 'gid', '501')

        yield self.provisioner.provision([])
        yield self.provisioner.provision([])

        self.assertEqual(self.accounts.groups['admin'][2], ['alice'])
        self.assertEqual(len([c for c in self.accounts.calls
                if c[0] == 'addGroupMember']), 1)


    @defer.inlineCallbacks
    def test_adminGroupFailureIgnored(self):
        self.accounts.failing.add('addGroup')

        yield self.provisioner.ensureAdminGroup('admin', 'alice')

        self.assertNotIn('admin', self.accounts.groups)


    @defer.inlineCallbacks
    def test_noAdminAccount(self):
        self.config.set('accounting', 'admin_account', '')

        yield self.provisioner.provision([])

        self.assertEqual(self.accounts.groups, {})


    @defer.inlineCallbacks
    def test_tenants(self):
        tenants = [TenantSpec('teama', 10000, 10000),
                TenantSpec('teamb', 10001, 10001)]

        yield self.provisioner.provision(tenants)

        self.assertEqual(self.accounts.userByName('teama'),
                ('teama', 10000, 10000))
        self.assertEqual(self.accounts.userByName('teamb'),
                ('teamb', 10001, 10001))

        root = filepath.FilePath(self.config.get('tenants', 'root'))

        self.assertEqual(root.getPermissions().shorthand(), 'rwxr-xr-x')

        for tenant in tenants:
            directory = root.child(tenant.name)
            self.assertTrue(directory.isdir())
            self.assertEqual(directory.getPermissions().shorthand(),
                    'rwxr-x---')


    def test_tenantConflictAborts(self):
        self.accounts.users['intruder'] = ('intruder', 10000, 10000)

        d = self.provisioner.provision([TenantSpec('teama', 10000, 10000)])
        return self.assertFailure(d, error.IdentityConflict)


    def test_noTenantDirectories(self):
        self.provisioner.ensureTenantDirectories([])

        self.assertFalse(filepath.FilePath(self.config.get('tenants',
                'root')).exists())
