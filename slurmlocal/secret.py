"""
Distribution of the munge key shared by all the nodes of the cluster.

The key lives on the volume mounted by every container. The controller creates
it if it is missing; every node (the controller included) then waits for it
to show up and installs a private copy for the local munge daemon.
"""



import errno
import os
import pwd

from twisted.python import filepath

from slurmlocal import error, logging, renderer, retry



KEY_MODE = 0o400

MUNGE_DIR_MODE = 0o700



def writeExclusive(path, content):
    """
    Creates the file at ``path``, readable by its owner only from the start,
    and writes ``content`` to it. Fails with ``EEXIST`` if it already exists.
    """

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, KEY_MODE)

    with os.fdopen(fd, 'wb') as fh:
        fh.write(content)



class SharedSecretCoordinator(object):
    """
    Creates (on the controller) and retrieves (everywhere) the shared key.
    """

    def __init__(self, reactor, config, isController, log=None):
        self.reactor = reactor
        self.config = config
        self.isController = isController
        self.log = log or logging.Logger(__name__, system='munge')

        self.sharedDir = filepath.FilePath(config.get('secret', 'shared_dir'))
        self.sharedKey = self.sharedDir.child(config.get('secret', 'name'))
        self.localDir = filepath.FilePath(config.get('paths', 'munge_dir'))
        self.localKey = self.localDir.child('munge.key')
        self.owner = config.get('daemons', 'munge_user')


    def create(self):
        """
        Creates the shared key unless it already exists.

        The random content is written to a private temporary file which is
        then hard linked to the final name: creating the link fails if another
        node was faster, so exactly one key is ever published and nobody can
        read a partially written one.

        Returns ``True`` if this call published the key.
        """

        if self.sharedKey.exists():
            return False

        content = os.urandom(self.config.getint('secret', 'size'))
        tmp = self.sharedKey.temporarySibling('.tmp')

        writeExclusive(tmp.path, content)

        try:
            os.link(tmp.path, self.sharedKey.path)
        except OSError as e:
            if e.errno == errno.EEXIST:
                return False
            if e.errno not in (errno.EPERM, errno.ENOTSUP, errno.EXDEV):
                raise
            # No hard links on this filesystem
            return self.createExclusive(content)
        finally:
            tmp.remove()
            self.sharedKey.changed()

        return True


    def createExclusive(self, content):
        try:
            writeExclusive(self.sharedKey.path, content)
        except OSError as e:
            if e.errno == errno.EEXIST:
                return False
            raise

        return True


    def install(self):
        """
        Copies the shared key to the location read by the local munge daemon,
        readable by its owner only.
        """

        self.localDir.makedirs(ignoreExistingDirectory=True)
        self.localDir.chmod(MUNGE_DIR_MODE)

        renderer.writeAtomically(self.localKey, self.sharedKey.getContent(),
                KEY_MODE)

        try:
            entry = pwd.getpwnam(self.owner)
            os.chown(self.localDir.path, entry.pw_uid, entry.pw_gid)
            os.chown(self.localKey.path, entry.pw_uid, entry.pw_gid)
        except (KeyError, OSError) as e:
            self.log.warning('Could not hand the munge key over to {0!r}: {1}',
                    self.owner, e)


    def establish(self):
        """
        Makes sure the shared key exists and is installed locally.

        Returns a deferred which fires with the path of the local copy, or
        fails with ``error.SecretUnavailable`` if the key did not show up
        within the configured number of attempts.
        """

        self.sharedDir.makedirs(ignoreExistingDirectory=True)

        if self.isController:
            if self.create():
                self.log.info('Created shared munge key at {0}',
                        self.sharedKey.path)
            else:
                self.log.debug('Shared munge key already present')

        d = retry.waitUntil(self.reactor, retry.fileExists(self.sharedKey),
                self.config.getint('secret', 'wait_attempts'),
                self.config.getfloat('secret', 'wait_interval'))

        def gotKey(found):
            if not found:
                raise error.SecretUnavailable('Munge key not found at '
                        '{0}'.format(self.sharedKey.path))

            self.install()
            return self.localKey

        return d.addCallback(gotKey)
