"""
Host side management of the local cluster: generates the container build and
compose files and drives ``docker compose``.
"""



import collections
import os
import pwd

from twisted.internet import defer
from twisted.python import filepath

from slurmlocal import error, logging, process, renderer



TEMPLATES = filepath.FilePath(__file__).sibling('templates')

PACKAGE = filepath.FilePath(__file__).parent()

GENERATED = ['docker-compose.yml', 'Dockerfile', 'slurm.conf.template']



class ComposeNotFound(error.ConfigurationError):
    """
    Neither the ``docker compose`` plugin nor ``docker-compose`` is
    available.
    """



class ClusterManager(object):

    def __init__(self, reactor, config, force=False, cwd=None, log=None):
        self.reactor = reactor
        self.config = config
        self.force = force
        self.log = log or logging.Logger(__name__, system='slocal')

        cwd = cwd or os.getcwd()

        self.projectDir = config.get('manager', 'project_dir') or cwd
        self.stateDir = filepath.FilePath(config.get('manager', 'state_dir')
                or os.path.join(cwd, '.slurm-local'))
        self.runner = process.CommandRunner(reactor)


    def environment(self):
        """
        Returns the ordered variables written to the compose ``.env`` file.
        Unset host identity values default to the identity of the user
        running this command.
        """

        config = self.config
        get = config.get

        container = get('manager', 'container_name') or 'slurm-local'
        controller = get('node', 'controller') or container

        user = get('host', 'user') or pwd.getpwuid(os.getuid()).pw_name

        env = collections.OrderedDict()
        env['SLURM_WORKDIR'] = self.projectDir
        env['SLURM_IMAGE_NAME'] = get('manager', 'image_name')
        env['SLURM_CONTAINER_NAME'] = container
        env['SLURM_NODE1_NAME'] = get('node', 'worker1') or container + '-1'
        env['SLURM_NODE2_NAME'] = get('node', 'worker2') or container + '-2'
        env['SLURM_CTLD_HOST'] = controller
        env['SLURM_GPU_COUNT'] = get('node', 'gpu_count')
        env['SLURM_CLUSTER_NAME'] = get('accounting', 'cluster_name')

        env['SLURM_HOST_USER_NAME'] = user
        env['SLURM_HOST_UID'] = get('host', 'uid') or str(os.getuid())
        env['SLURM_HOST_GID'] = get('host', 'gid') or str(os.getgid())

        env['SLURM_ADMIN_ACCOUNT'] = get('accounting', 'admin_account')
        env['SLURM_TENANTS'] = get('tenants', 'spec')
        env['SLURM_TENANTS_DIR'] = get('tenants', 'root')
        env['SLURM_TENANT_UID_BASE'] = get('tenants', 'uid_base')
        env['SLURM_TENANT_GID_BASE'] = get('tenants', 'gid_base')
        env['SLURM_ENABLE_CGROUP'] = get('isolation', 'cgroup')
        env['SLURM_PRIVILEGED'] = get('manager', 'privileged')

        env['SLURM_DB_HOST'] = get('accounting', 'db_host')
        env['SLURM_DB_PORT'] = get('accounting', 'db_port')
        env['SLURM_DB_NAME'] = get('accounting', 'db_name')
        env['SLURM_DB_USER'] = get('accounting', 'db_user')
        env['SLURM_DB_PASS'] = get('accounting', 'db_pass')
        env['SLURM_DB_ROOT_PASS'] = get('manager', 'db_root_pass')
        env['SLURM_DB_CONTAINER_NAME'] = (get('manager', 'db_container_name')
                or container + '-db')
        env['SLURM_DBD_PORT'] = get('accounting', 'dbd_port')

        return env


    def writeFile(self, name, content):
        """
        Writes a generated file to the state directory, unless it exists
        already and ``force`` is not set. Returns ``True`` if written.
        """

        path = self.stateDir.child(name)

        if path.exists() and not self.force:
            self.log.debug('Keeping existing {0}', path.path)
            return False

        renderer.writeAtomically(path, content)
        return True


    def copyPackage(self):
        destination = self.stateDir.child(PACKAGE.basename())

        if destination.exists():
            if not self.force:
                return False
            destination.remove()

        PACKAGE.copyTo(destination)
        return True


    def ensureFiles(self):
        """
        Creates the state directory and the files needed to build and run
        the cluster. The ``.env`` file is always refreshed.
        """

        self.stateDir.makedirs(ignoreExistingDirectory=True)

        env = ''.join('{0}={1}\n'.format(k, v)
                for k, v in self.environment().items())
        renderer.writeAtomically(self.stateDir.child('.env'), env)

        for name in GENERATED:
            self.writeFile(name, TEMPLATES.child(name).getContent())

        self.copyPackage()


    @defer.inlineCallbacks
    def composeCommand(self):
        """
        Returns the argv prefix of the available compose implementation.
        """

        if (yield self.runner.succeeds(['docker', 'compose', 'version'])):
            return ['docker', 'compose']

        if process.which('docker-compose'):
            return ['docker-compose']

        raise ComposeNotFound('Docker Compose not found. Install Docker '
                'Desktop (macOS) or docker and compose (Linux).')


    @defer.inlineCallbacks
    def compose(self, *args):
        command = yield self.composeCommand()
        code = yield process.runInteractive(self.reactor, command + list(args),
                path=self.stateDir.path)
        return code


    @defer.inlineCallbacks
    def up(self):
        if not process.which('docker'):
            raise error.ConfigurationError('Missing required command: docker')

        self.ensureFiles()

        code = yield self.compose('up', '-d', '--build')

        if not code:
            env = self.environment()
            self.log.info('Slurm is up. Nodes: {0}, {1}, {2}',
                    env['SLURM_CONTAINER_NAME'], env['SLURM_NODE1_NAME'],
                    env['SLURM_NODE2_NAME'])

        return code


    @defer.inlineCallbacks
    def down(self):
        if not self.stateDir.isdir():
            self.log.info('Nothing to do (missing {0})', self.stateDir.path)
            return 0

        code = yield self.compose('down')
        return code


    @defer.inlineCallbacks
    def logs(self):
        code = yield self.compose('logs', '-f', '--tail=200')
        return code


    def usage(self):
        return (
            'Usage:\n'
            '  slocal [--force] up   # build and start the local cluster\n'
            '  slocal down           # stop it\n'
            '  slocal logs           # follow the container logs\n'
            '\n'
            'Files:\n'
            '  {0}/ (compose file, Dockerfile and configuration)\n'
        ).format(self.stateDir.path)
