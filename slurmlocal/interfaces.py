"""
Interfaces of the pluggable collaborators of the node bootstrap. The default
implementations talk to the local system; the test suite substitutes in-memory
fakes.
"""



from zope.interface import Interface, Attribute



class ICommandRunner(Interface):
    """
    Runs external (non daemon) commands, e.g. ``sacctmgr`` or ``useradd``.
    """

    def run(argv):
        """
        Runs the command described by the ``argv`` list and returns a deferred
        which fires with an ``(output, exitCode)`` tuple, where ``output`` are
        the bytes written on the standard output and the standard error.

        The deferred never errbacks because of a non-zero exit code.
        """


    def succeeds(argv):
        """
        Returns a deferred which fires with ``True`` if the command exits with
        status 0 and ``False`` otherwise.
        """



class IAccountDatabase(Interface):
    """
    A view on the users and groups of the local system which can be extended
    with new entries.
    """

    def userByName(name):
        """
        Returns the ``(name, uid, gid)`` triple of the named user or ``None``.
        """


    def userByUid(uid):
        """
        Returns the ``(name, uid, gid)`` triple of the user owning ``uid`` or
        ``None``.
        """


    def groupByName(name):
        """
        Returns the ``(name, gid, members)`` triple of the named group or
        ``None``.
        """


    def groupByGid(gid):
        """
        Returns the ``(name, gid, members)`` triple of the group owning
        ``gid`` or ``None``.
        """


    def addSystemUser(name, home):
        """
        Creates a system user without login shell. Returns a deferred.
        """


    def addGroup(name, gid=None):
        """
        Creates a group, with the given ``gid`` if any. Returns a deferred.
        """


    def addLoginUser(name, uid, gid, home):
        """
        Creates a login user with the given ids. Returns a deferred.
        """


    def addGroupMember(group, user):
        """
        Adds ``user`` to the supplementary members of ``group``. Returns a
        deferred.
        """



class IDaemonLauncher(Interface):
    """
    Spawns the long running daemons supervised by the bootstrap.
    """

    env = Attribute("""The environment passed to every spawned daemon""")


    def launch(tag, argv, user=None, logFile=None):
        """
        Spawns ``argv`` as ``user`` (the current user if ``None``) and returns
        an object providing ``IDaemon``.
        """



class IDaemon(Interface):
    """
    A long running process.
    """

    tag = Attribute("""Short name of the daemon, e.g. 'slurmctld'""")

    logFile = Attribute("""Path of the log file written by the daemon, if
                           any""")

    def whenEnded():
        """
        Returns a new deferred which fires with the exit code of the process
        as soon as it exits.
        """


    def isRunning():
        """
        Returns ``True`` if the process was spawned and did not exit yet.
        """


    def signal(signalName):
        """
        Sends the named signal (e.g. ``'KILL'``) to the process, if it is
        still running.
        """


    def terminate():
        """
        Sends SIGTERM to the process if it is still running. Returns the same
        deferred as ``whenEnded``.
        """
