"""
Bootstrap related errors.

Every error defined here is fatal: the node bootstrap aborts before starting
(or right after having started) its daemons and the process exits with the
``exitCode`` of the raised exception.
"""



class BootstrapError(Exception):
    """
    Base class of all the errors which abort the bootstrap of a node.
    """

    exitCode = 1



class ConfigurationError(BootstrapError):
    """
    Raised when the configuration contains a value which can't be used, e.g.
    an unknown node role.
    """

    exitCode = 2



class MissingInputError(BootstrapError):
    """
    Raised when a required input file (e.g. the slurm.conf template) does not
    exist.
    """

    exitCode = 3



class IdentityConflict(BootstrapError):
    """
    Raised when a login identity can't be created because its uid is already
    claimed by another identity.
    """

    exitCode = 4



class SecretUnavailable(BootstrapError):
    """
    Raised when the shared munge key did not show up in the shared directory
    in time.
    """

    exitCode = 5



class AccountingStoreUnreachable(BootstrapError):
    """
    Raised when the accounting database does not accept connections in time.
    """

    exitCode = 6



class CommandFailed(Exception):
    """
    Raised when an external command exits with a non-zero status. Never fatal
    by itself; callers decide whether the failure matters.
    """

    def __init__(self, argv, exitCode, output=b''):
        Exception.__init__(self, argv, exitCode)
        self.argv = argv
        self.exitCode = exitCode
        self.output = output


    def __str__(self):
        return 'Command {0!r} exited with status {1}'.format(
                ' '.join(self.argv), self.exitCode)
