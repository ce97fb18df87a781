"""
Long running daemon processes and their supervision.

The daemons of a node form a fail-together group: none of them is expected to
exit while the node is in service, so the first one exiting brings down the
whole group and its exit code becomes the exit code of the bootstrap.
"""



import os
import pwd

from zope.interface import implementer

from twisted.internet import defer, error as ierror, protocol

from slurmlocal import interfaces, logging, process



@implementer(interfaces.IDaemon)
class Daemon(protocol.ProcessProtocol):
    """
    Process protocol handling the lifecycle of a single daemon. Everything the
    process writes on its standard output or error is forwarded to the log,
    tagged with the daemon name.
    """

    WAITING, STARTED, TERMINATING, STOPPED = range(4)


    def __init__(self, tag, logFile=None):
        self.tag = tag
        self.logFile = logFile
        self.status = Daemon.WAITING
        self.exitCode = None
        self.waiters = []
        self.log = logging.Logger(__name__, system=tag)


    def connectionMade(self):
        """
        Called when the process spawns. Closes the standard input.
        """
        self.transport.closeStdin()
        self.status = Daemon.STARTED
        self.log.info('Started with PID {0}', self.transport.pid)


    def outReceived(self, data):
        for line in data.decode('utf-8', 'replace').splitlines():
            if line.strip():
                self.log.info(line.rstrip())


    errReceived = outReceived


    def processEnded(self, reason):
        """
        Called when the process exits. Fires all the deferreds returned by
        ``whenEnded`` with the exit code of the process.
        """

        code = process.exitCodeFromReason(reason)

        if self.status == Daemon.TERMINATING:
            self.log.debug('Process terminated (exit code {0})', code)
        else:
            self.log.warning('Process quit unexpectedly (exit code {0})',
                    code)

        self.status = Daemon.STOPPED
        self.exitCode = code

        waiters, self.waiters = self.waiters, []

        for d in waiters:
            d.callback(code)


    def whenEnded(self):
        """
        Returns a new deferred which fires with the exit code of the process
        as soon as it exits (straight away if it already did).
        """

        if self.status == Daemon.STOPPED:
            return defer.succeed(self.exitCode)

        d = defer.Deferred()
        self.waiters.append(d)
        return d


    def isRunning(self):
        return self.status in (Daemon.STARTED, Daemon.TERMINATING)


    def signal(self, signalName):
        try:
            self.transport.signalProcess(signalName)
        except ierror.ProcessExitedAlready:
            pass


    def terminate(self):
        """
        Asks the process to terminate (SIGTERM) if it is running. Returns a
        deferred firing with the exit code once the process exited.
        """

        if self.status == Daemon.STARTED:
            self.status = Daemon.TERMINATING
            self.signal('TERM')

        return self.whenEnded()



@implementer(interfaces.IDaemonLauncher)
class DaemonLauncher(object):
    """
    Spawns daemons on the given reactor, switching to the requested user when
    running as root.
    """

    def __init__(self, reactor, env=None):
        self.reactor = reactor
        self.env = dict(os.environ if env is None else env)
        self.log = logging.Logger(__name__, system='launcher')


    def credentials(self, user):
        if user is None or os.getuid() != 0:
            return None, None

        entry = pwd.getpwnam(user)
        return entry.pw_uid, entry.pw_gid


    def launch(self, tag, argv, user=None, logFile=None):
        uid, gid = self.credentials(user)

        self.log.debug('Spawning {0}: {1} (user: {2})', tag, ' '.join(argv),
                user or 'current')

        daemon = Daemon(tag, logFile)
        self.reactor.spawnProcess(daemon, argv[0], list(argv), env=self.env,
                uid=uid, gid=gid)
        return daemon



class ProcessGroup(object):
    """
    A fail-together supervision group.

    Members are daemons whose exit tears the group down. Auxiliary processes
    (e.g. the log streamer) are stopped together with the group but their
    exit is never considered a fault.
    """

    KILL_TIMEOUT = 10


    def __init__(self, reactor, log=None):
        self.reactor = reactor
        self.members = []
        self.auxiliary = []
        self.log = log or logging.Logger(__name__, system='supervisor')


    def add(self, daemon):
        self.members.append(interfaces.IDaemon(daemon))
        return daemon


    def addAuxiliary(self, daemon):
        self.auxiliary.append(interfaces.IDaemon(daemon))
        return daemon


    def waitForFirstExit(self):
        """
        Returns a deferred firing with ``(daemon, exitCode)`` as soon as any
        member exits.
        """

        if not self.members:
            raise RuntimeError('Cannot supervise an empty process group')

        def tagged(daemon):
            return daemon.whenEnded().addCallback(lambda code: (daemon, code))

        d = defer.DeferredList([tagged(m) for m in self.members],
                fireOnOneCallback=True, fireOnOneErrback=True,
                consumeErrors=True)
        d.addCallback(lambda result: result[0])
        return d


    def stop(self, daemon):
        """
        Terminates ``daemon``, killing it if it does not exit within
        ``KILL_TIMEOUT`` seconds.
        """

        if not daemon.isRunning():
            return daemon.whenEnded()

        d = daemon.terminate()
        kill = self.reactor.callLater(self.KILL_TIMEOUT, daemon.signal, 'KILL')

        def ended(code):
            if kill.active():
                kill.cancel()
            return code

        return d.addCallback(ended)


    def terminateAll(self):
        """
        Stops the auxiliary processes and all the members still running.
        Returns a deferred which fires once all of them exited.
        """

        running = [d for d in self.auxiliary + self.members if d.isRunning()]

        if running:
            self.log.info('Stopping {0}', ', '.join(d.tag for d in running))

        return defer.DeferredList([self.stop(d) for d in running],
                consumeErrors=True)


    @defer.inlineCallbacks
    def supervise(self):
        """
        Blocks until the first member exits, then stops everything else and
        returns the exit code of that first member.
        """

        daemon, code = yield self.waitForFirstExit()

        self.log.warning('{0} exited with status {1}, shutting down the node',
                daemon.tag, code)

        yield self.terminateAll()
        return code
