"""
In-memory collaborators and configuration builders shared by the test suite.
"""



import os
import pwd

from zope.interface import implementer

from twisted.internet import defer, task
from twisted.python import filepath

from slurmlocal import error, interfaces, settings



TEMPLATE = filepath.FilePath(settings.__file__).sibling('templates').child(
        'slurm.conf.template')

CURRENT_USER = pwd.getpwuid(os.getuid()).pw_name

MEMINFO = b"""\
MemTotal:        8388608 kB
MemFree:         1048576 kB
"""



def makeConfig(testCase, **options):
    """
    Returns a configuration whose paths all point below a fresh temporary
    directory of ``testCase``. Options can be overridden with
    ``section_option=value`` keyword arguments.
    """

    root = filepath.FilePath(testCase.mktemp())
    root.makedirs()

    meminfo = root.child('meminfo')
    meminfo.setContent(MEMINFO)

    config = settings.loadConfig(defaults=[], environ={})

    paths = {
        'template': TEMPLATE.path,
        'config_dirs': '{0} {1}'.format(root.descendant(['etc', 'slurm']).path,
                root.descendant(['etc', 'slurm-llnl']).path),
        'munge_dir': root.descendant(['etc', 'munge']).path,
        'munge_runtime_dirs': root.descendant(['run', 'munge']).path,
        'slurm_home': root.descendant(['var', 'lib', 'slurm']).path,
        'spool_dirs': root.descendant(['var', 'spool', 'slurmctld']).path,
        'slurmd_spool_dir': root.descendant(['var', 'spool', 'slurmd']).path,
        'log_dir': root.descendant(['var', 'log', 'slurm']).path,
        'device_dir': root.child('dev').path,
        'meminfo': meminfo.path,
    }

    for option, value in paths.items():
        config.set('paths', option, value)

    root.child('dev').makedirs()

    config.set('node', 'name', 'slurm-local')
    config.set('secret', 'shared_dir', root.child('shared').path)
    config.set('secret', 'wait_attempts', '3')
    config.set('tenants', 'root', root.descendant(['work', 'tenants']).path)
    config.set('daemons', 'munge_user', CURRENT_USER)
    config.set('daemons', 'slurm_user', CURRENT_USER)
    config.set('accounting', 'wait_attempts', '3')
    config.set('accounting', 'ready_attempts', '3')

    for key, value in options.items():
        section, option = key.split('_', 1)
        config.set(section, option, value)

    config.root = root

    return config



class FakeReactor(task.Clock):
    """
    A clock which also records the system event triggers.
    """

    def __init__(self):
        task.Clock.__init__(self)
        self.triggers = {}
        self.spawned = []


    def addSystemEventTrigger(self, phase, eventType, f, *args, **kwargs):
        handle = (phase, eventType, len(self.triggers))
        self.triggers[handle] = (f, args, kwargs)
        return handle


    def removeSystemEventTrigger(self, handle):
        del self.triggers[handle]


    def spawnProcess(self, processProtocol, executable, args=(), env={},
            path=None, uid=None, gid=None, usePTY=0, childFDs=None):
        self.spawned.append((processProtocol, executable, list(args), env,
                path, uid, gid, childFDs))



@implementer(interfaces.ICommandRunner)
class FakeRunner(object):
    """
    Records the commands it is asked to run. ``results`` maps argv prefixes
    (tuples) to ``(output, exitCode)`` tuples or to callables returning one;
    the longest matching prefix wins.
    """

    def __init__(self, results=None, default=(b'', 0)):
        self.results = dict(results or {})
        self.default = default
        self.commands = []


    def run(self, argv):
        self.commands.append(list(argv))

        matches = [p for p in self.results if tuple(argv[:len(p)]) == p]
        result = self.results[max(matches, key=len)] if matches \
                else self.default

        if callable(result):
            result = result(argv)

        return defer.succeed(result)


    def succeeds(self, argv):
        return self.run(argv).addCallback(lambda result: result[1] == 0)



@implementer(interfaces.IAccountDatabase)
class FakeAccounts(object):
    """
    An account database living in memory. Method names listed in
    ``failing`` fail with ``error.CommandFailed``.
    """

    def __init__(self, users=(), groups=()):
        self.users = dict((u[0], tuple(u)) for u in users)
        self.groups = dict((g[0], [g[0], g[1], list(g[2])]) for g in groups)
        self.calls = []
        self.failing = set()
        self.nextId = 900


    def allocate(self):
        self.nextId += 1
        return self.nextId


    def userByName(self, name):
        return self.users.get(name)


    def userByUid(self, uid):
        for user in self.users.values():
            if user[1] == uid:
                return user
        return None


    def groupByName(self, name):
        group = self.groups.get(name)
        if group is None:
            return None
        return group[0], group[1], list(group[2])


    def groupByGid(self, gid):
        for group in self.groups.values():
            if group[1] == gid:
                return group[0], group[1], list(group[2])
        return None


    def record(self, method, *args):
        self.calls.append((method,) + args)

        if method in self.failing:
            raise error.CommandFailed([method] + [str(a) for a in args], 1)


    def addSystemUser(self, name, home):
        return defer.maybeDeferred(self._addSystemUser, name, home)


    def _addSystemUser(self, name, home):
        self.record('addSystemUser', name, home)
        uid = self.allocate()
        self.users[name] = (name, uid, uid)


    def addGroup(self, name, gid=None):
        return defer.maybeDeferred(self._addGroup, name, gid)


    def _addGroup(self, name, gid):
        self.record('addGroup', name, gid)
        self.groups[name] = [name, self.allocate() if gid is None else gid, []]


    def addLoginUser(self, name, uid, gid, home):
        return defer.maybeDeferred(self._addLoginUser, name, uid, gid, home)


    def _addLoginUser(self, name, uid, gid, home):
        self.record('addLoginUser', name, uid, gid, home)
        self.users[name] = (name, uid, gid)


    def addGroupMember(self, group, user):
        return defer.maybeDeferred(self._addGroupMember, group, user)


    def _addGroupMember(self, group, user):
        self.record('addGroupMember', group, user)
        self.groups[group][2].append(user)



@implementer(interfaces.IDaemon)
class FakeDaemon(object):
    """
    A daemon which only exits when told to. A ``stubborn`` daemon ignores
    SIGTERM.
    """

    def __init__(self, tag, argv, user=None, logFile=None, stubborn=False):
        self.tag = tag
        self.argv = argv
        self.user = user
        self.logFile = logFile
        self.stubborn = stubborn
        self.signals = []
        self.exitCode = None
        self.waiters = []


    def exit(self, code):
        self.exitCode = code
        waiters, self.waiters = self.waiters, []
        for d in waiters:
            d.callback(code)


    def whenEnded(self):
        if self.exitCode is not None:
            return defer.succeed(self.exitCode)
        d = defer.Deferred()
        self.waiters.append(d)
        return d


    def isRunning(self):
        return self.exitCode is None


    def signal(self, signalName):
        if not self.isRunning():
            return

        self.signals.append(signalName)

        if signalName == 'KILL':
            self.exit(137)
        elif signalName == 'TERM' and not self.stubborn:
            self.exit(143)


    def terminate(self):
        self.signal('TERM')
        return self.whenEnded()



@implementer(interfaces.IDaemonLauncher)
class FakeLauncher(object):

    def __init__(self, env=None):
        self.env = dict(env or {'PATH': os.environ.get('PATH', os.defpath)})
        self.launched = []
        self.daemons = {}


    def launch(self, tag, argv, user=None, logFile=None):
        daemon = FakeDaemon(tag, list(argv), user, logFile)
        self.launched.append(daemon)
        self.daemons[tag] = daemon
        return daemon


    @property
    def tags(self):
        return [d.tag for d in self.launched]
