"""
The node bootstrap: turns a freshly started container into a working SLURM
node and keeps it running.
"""



import os
import pwd

from twisted.internet import defer
from twisted.python import filepath

from slurmlocal import daemons, identity, logging, process, renderer, retry
from slurmlocal import secret, sequencer, settings, tenants, topology



RUNTIME_DIR_MODE = 0o755



class NodeBootstrap(object):
    """
    Runs the bootstrap phases of the local node in order:

     1. resolve the cluster topology and parse the tenants;
     2. provision users, groups and tenant directories;
     3. establish the shared munge key;
     4. prepare the runtime directories of the daemons;
     5. render the configuration documents;
     6. start and supervise the daemons.

    The collaborators talking to the system (``runner``, ``accounts`` and
    ``launcher``) can be replaced, by default they operate on the local host.
    """

    def __init__(self, reactor, config, runner=None, accounts=None,
            launcher=None, log=None):
        self.reactor = reactor
        self.config = config
        self.log = log or logging.Logger(__name__, system='bootstrap')

        roots = settings.getList(config, 'paths', 'config_dirs')
        env = dict(os.environ)
        env['SLURM_CONF'] = filepath.FilePath(roots[0]).child(
                'slurm.conf').path

        self.runner = runner or process.CommandRunner(reactor, env)
        self.accounts = accounts or identity.SystemAccounts(self.runner)
        self.launcher = launcher or daemons.DaemonLauncher(reactor, env)
        self.probe = retry.tcpReachable


    def makeDirectory(self, path, owner=None):
        directory = filepath.FilePath(path)
        directory.makedirs(ignoreExistingDirectory=True)
        directory.chmod(RUNTIME_DIR_MODE)

        if owner:
            self.chown(directory, owner)

        return directory


    def chown(self, path, user):
        try:
            entry = pwd.getpwnam(user)
            os.chown(path.path, entry.pw_uid, entry.pw_gid)
        except (KeyError, OSError) as e:
            self.log.debug('Could not hand {0} over to {1}: {2}', path.path,
                    user, e)


    def prepareDirectories(self):
        """
        Creates the runtime, spool and log directories of the daemons and
        the log files streamed to the console.
        """

        config = self.config
        mungeUser = config.get('daemons', 'munge_user')
        slurmUser = config.get('daemons', 'slurm_user')

        for path in settings.getList(config, 'paths', 'munge_runtime_dirs'):
            self.makeDirectory(path, mungeUser)

        for path in settings.getList(config, 'paths', 'spool_dirs'):
            self.makeDirectory(path, slurmUser)

        logDir = self.makeDirectory(config.get('paths', 'log_dir'), slurmUser)
        self.makeDirectory(config.get('paths', 'slurmd_spool_dir'))

        for name in ('slurmctld', 'slurmd', 'slurmdbd'):
            logFile = logDir.child(name + '.log')
            logFile.touch()

            if name != 'slurmd':
                self.chown(logFile, slurmUser)


    @defer.inlineCallbacks
    def run(self):
        """
        Returns a deferred firing with the exit code of the first daemon to
        exit. Fatal bootstrap problems are reported as ``BootstrapError``
        failures.
        """

        config = self.config

        topo = topology.resolveTopology(config)
        tenantList = tenants.tenantsFromConfig(config)

        self.log.info('Bootstrapping {0} (role: {1}, controller: {2}, '
                'tenants: {3})', topo.localName, topo.role,
                topo.controller.name, len(tenantList))

        provisioner = identity.IdentityProvisioner(config, self.accounts)
        yield provisioner.provision(tenantList)

        coordinator = secret.SharedSecretCoordinator(self.reactor, config,
                topo.isController())
        yield coordinator.establish()

        self.prepareDirectories()

        renderer.Renderer(config, topo, tenantList).renderAll()

        host = provisioner.hostIdentity()

        node = sequencer.DaemonSequencer(self.reactor, config, topo,
                tenantList, self.launcher, self.runner,
                hostUser=host[0] if host else None)
        node.probe = self.probe

        code = yield node.run()
        return code
