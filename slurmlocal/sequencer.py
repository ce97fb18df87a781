"""
Ordered start of the daemons of a node and their supervision.

The start order is fixed:

 1. ``munged`` (every node);
 2. on the controller: wait for the accounting database, ``slurmdbd``, seed
    the accounting data, ``slurmctld``;
 3. on the workers: ``slurmd``;
 4. on the controller: wait for the controller to answer and resume all the
    nodes;
 5. stream the SLURM log files to the console.

Once everything is up the node is supervised as a fail-together group.
"""



import shlex

from twisted.internet import defer
from twisted.python import filepath

from slurmlocal import accounting, daemons, error, interfaces, logging, process
from slurmlocal import retry



class DaemonSequencer(object):

    def __init__(self, reactor, config, topo, tenants, launcher, runner,
            hostUser=None, log=None):
        self.reactor = reactor
        self.config = config
        self.topology = topo
        self.tenants = list(tenants)
        self.launcher = interfaces.IDaemonLauncher(launcher)
        self.runner = interfaces.ICommandRunner(runner)
        self.hostUser = hostUser
        self.log = log or logging.Logger(__name__, system='sequencer')
        self.group = daemons.ProcessGroup(reactor)
        self.probe = retry.tcpReachable


    def command(self, name):
        return shlex.split(self.config.get('daemons', name))


    def logFile(self, name):
        logDir = filepath.FilePath(self.config.get('paths', 'log_dir'))
        return logDir.child(name + '.log').path


    def start(self, tag, user=None):
        """
        Launches the daemon configured as ``tag`` in the ``[daemons]``
        section and adds it to the supervised group.
        """

        daemon = self.launcher.launch(tag, self.command(tag), user=user,
                logFile=self.logFile(tag))
        return self.group.add(daemon)


    @defer.inlineCallbacks
    def waitForAccountingStore(self):
        config = self.config
        host = config.get('accounting', 'db_host')
        port = config.getint('accounting', 'db_port')

        self.log.info('Waiting for the accounting database at {0}:{1}',
                host, port)

        reachable = yield retry.waitUntil(self.reactor,
                lambda: self.probe(self.reactor, host, port),
                config.getint('accounting', 'wait_attempts'),
                config.getfloat('accounting', 'wait_interval'))

        if not reachable:
            raise error.AccountingStoreUnreachable('Accounting database not '
                    'reachable at {0}:{1}'.format(host, port))


    @defer.inlineCallbacks
    def resumeNodes(self):
        """
        Waits for ``sinfo`` to succeed and then brings every node of the
        cluster back into service. Nodes are resumed even if the controller
        never answered; all the failures are ignored.
        """

        config = self.config

        ready = yield retry.waitUntil(self.reactor,
                lambda: self.runner.succeeds(self.command('sinfo')),
                config.getint('accounting', 'ready_attempts'),
                config.getfloat('accounting', 'ready_interval'))

        if not ready:
            self.log.warning('slurmctld did not answer, resuming nodes anyway')

        for name in self.topology.nodeNames():
            output, code = yield self.runner.run(self.command('scontrol') + [
                    'update', 'NodeName=' + name, 'State=RESUME'])

            if code:
                self.log.debug('Could not resume {0}: {1}', name,
                        output.decode('utf-8', 'replace').strip())


    def streamLogs(self):
        """
        Follows the SLURM log files on the console. Optional: nothing happens
        if ``tail`` is missing or fails to start.
        """

        argv = self.command('tail')

        if not argv or not process.which(argv[0], self.launcher.env):
            self.log.debug('No tail command available, not streaming logs')
            return None

        names = ['slurmctld', 'slurmd', 'slurmdbd']
        argv += ['-n+1', '-F'] + [self.logFile(name) for name in names]

        try:
            streamer = self.launcher.launch('logs', argv)
        except OSError as e:
            self.log.warning('Could not stream the log files: {0}', e)
            return None

        return self.group.addAuxiliary(streamer)


    @defer.inlineCallbacks
    def startAll(self):
        config = self.config
        topo = self.topology

        self.start('munged', user=config.get('daemons', 'munge_user'))

        if topo.isController():
            yield self.waitForAccountingStore()

            self.start('slurmdbd', user=config.get('daemons', 'slurm_user'))

            seeder = accounting.AccountingBootstrap(self.reactor, config,
                    self.runner, self.tenants, self.hostUser)
            yield seeder.seed()

            self.start('slurmctld', user=config.get('daemons', 'slurm_user'))

        if topo.isWorker():
            self.start('slurmd')

        if topo.isController():
            yield self.resumeNodes()

        self.streamLogs()


    @defer.inlineCallbacks
    def run(self):
        """
        Starts the daemons, then supervises them until the first one exits.

        Returns a deferred firing with the exit code of that daemon. If the
        start sequence fails, the daemons started so far are stopped and the
        error is propagated.
        """

        trigger = self.reactor.addSystemEventTrigger('before', 'shutdown',
                self.group.terminateAll)

        try:
            try:
                yield self.startAll()
            except Exception:
                yield self.group.terminateAll()
                raise

            self.log.info('Node {0} is up (role: {1})',
                    self.topology.localName, self.topology.role)

            code = yield self.group.supervise()
        finally:
            self.reactor.removeSystemEventTrigger(trigger)

        return code
