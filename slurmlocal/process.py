"""
Execution of the external, short lived commands used during the bootstrap
(``sacctmgr``, ``useradd``, ``scontrol``, ...).
"""



import os
import shutil

from zope.interface import implementer

from twisted.internet import defer, protocol

from slurmlocal import interfaces, logging



COMMAND_NOT_FOUND = 127



def exitCodeFromReason(reason):
    """
    Converts the ``reason`` failure passed to ``processEnded`` to a shell
    style exit code (``128 + signal`` for processes killed by a signal).
    """

    value = reason.value

    if getattr(value, 'signal', None):
        return 128 + value.signal

    return getattr(value, 'exitCode', None) or 0



def which(executable, env=None):
    """
    Returns ``True`` if ``executable`` is an absolute path or can be found in
    the ``PATH`` of ``env``.
    """

    if os.path.isabs(executable):
        return os.access(executable, os.X_OK)

    path = (env or os.environ).get('PATH', os.defpath)
    return shutil.which(executable, path=path) is not None



class OutputCollector(protocol.ProcessProtocol):
    """
    Process protocol collecting both output streams of a command and firing
    ``deferred`` with ``(output, exitCode)`` when it exits.
    """

    def __init__(self, deferred):
        self.deferred = deferred
        self.output = []


    def connectionMade(self):
        self.transport.closeStdin()


    def outReceived(self, data):
        self.output.append(data)


    errReceived = outReceived


    def processEnded(self, reason):
        self.deferred.callback((b''.join(self.output),
                exitCodeFromReason(reason)))



@implementer(interfaces.ICommandRunner)
class CommandRunner(object):
    """
    Runs commands on the given reactor with the environment given at
    construction time.
    """

    def __init__(self, reactor, env=None):
        self.reactor = reactor
        self.env = dict(os.environ if env is None else env)
        self.log = logging.Logger(__name__, system='exec')


    def run(self, argv):
        """
        Runs ``argv`` and returns a deferred firing with ``(output,
        exitCode)``.

        Commands killed by a signal are reported with the ``128 + signal``
        exit code, commands which can't be found at all with 127.
        """

        self.log.debug('Running {0}', ' '.join(argv))

        if not which(argv[0], self.env):
            self.log.debug('Command {0!r} not found', argv[0])
            return defer.succeed((b'', COMMAND_NOT_FOUND))

        d = defer.Deferred()
        self.reactor.spawnProcess(OutputCollector(d), argv[0], list(argv),
                env=self.env)
        return d


    def succeeds(self, argv):
        d = self.run(argv)
        d.addCallback(lambda result: result[1] == 0)
        return d



class ExitCodeProtocol(protocol.ProcessProtocol):
    """
    Process protocol for commands sharing the standard streams of the current
    process. Fires ``deferred`` with the exit code only.
    """

    def __init__(self, deferred):
        self.deferred = deferred


    def processEnded(self, reason):
        self.deferred.callback(exitCodeFromReason(reason))



def runInteractive(reactor, argv, path=None, env=None):
    """
    Runs ``argv`` in the ``path`` directory, connected to the standard input,
    output and error of the current process. Returns a deferred firing with
    the exit code of the command.
    """

    if not which(argv[0], env):
        return defer.succeed(COMMAND_NOT_FOUND)

    d = defer.Deferred()
    reactor.spawnProcess(ExitCodeProtocol(d), argv[0], list(argv),
            env=dict(os.environ if env is None else env), path=path,
            childFDs={0: 0, 1: 1, 2: 2})
    return d
