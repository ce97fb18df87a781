"""
Seeding of the accounting database: the cluster itself, the admin account and
its users, and one account/user association per tenant.

Every ``sacctmgr`` command is issued with ``-i`` (no confirmation) and its
failure is ignored: the entities usually exist already when the container is
restarted, and accounting problems must never prevent the node from coming
up.
"""



import shlex

from twisted.internet import defer

from slurmlocal import interfaces, logging, retry



class AccountingBootstrap(object):

    def __init__(self, reactor, config, runner, tenants, hostUser=None,
            log=None):
        self.reactor = reactor
        self.config = config
        self.runner = interfaces.ICommandRunner(runner)
        self.tenants = list(tenants)
        self.hostUser = hostUser
        self.log = log or logging.Logger(__name__, system='accounting')


    def sacctmgr(self, *args):
        return shlex.split(self.config.get('daemons', 'sacctmgr')) + list(args)


    @defer.inlineCallbacks
    def waitUntilResponsive(self):
        """
        Polls ``sacctmgr -n list cluster`` until slurmdbd answers. Returns
        ``False`` (after logging a warning) if it never did; the seeding is
        attempted anyway.
        """

        config = self.config

        ready = yield retry.waitUntil(self.reactor,
                lambda: self.runner.succeeds(self.sacctmgr('-n', 'list',
                        'cluster')),
                config.getint('accounting', 'ready_attempts'),
                config.getfloat('accounting', 'ready_interval'))

        if not ready:
            self.log.warning('slurmdbd did not become responsive, seeding '
                    'the accounting database anyway')

        return ready


    @defer.inlineCallbacks
    def ensure(self, *args):
        """
        Runs ``sacctmgr -i <args>`` and returns ``True`` if it succeeded. A
        failure is only logged.
        """

        output, code = yield self.runner.run(self.sacctmgr('-i', *args))

        if code:
            self.log.debug('sacctmgr {0} exited with {1} (probably exists '
                    'already): {2}', ' '.join(args), code,
                    output.decode('utf-8', 'replace').strip())
            return False

        self.log.info('sacctmgr {0}', ' '.join(args))
        return True


    def ensureUser(self, user, account):
        return self.ensure('add', 'user', user, 'Account=' + account,
                'DefaultAccount=' + account)


    @defer.inlineCallbacks
    def seed(self):
        """
        Waits for slurmdbd and then creates, in order:

         1. the cluster;
         2. the admin account with ``root`` and the host user as members;
         3. for each tenant, an account and a user with that account as
            default.
        """

        yield self.waitUntilResponsive()

        yield self.ensure('add', 'cluster',
                self.config.get('accounting', 'cluster_name') or 'local')

        admin = self.config.get('accounting', 'admin_account')

        if admin:
            yield self.ensure('add', 'account', admin,
                    'Description=Admin account')
            yield self.ensureUser('root', admin)

            if self.hostUser:
                yield self.ensureUser(self.hostUser, admin)

        for tenant in self.tenants:
            yield self.ensure('add', 'account', tenant.name,
                    'Description=Tenant account: ' + tenant.name)
            yield self.ensureUser(tenant.name, tenant.name)
