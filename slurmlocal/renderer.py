"""
Rendering of the SLURM configuration documents.

The cluster configuration is first modelled as a ``ClusterConfig`` (nodes,
partitions, plugins) and then serialized through the ``slurm.conf`` template.
Placeholders are replaced in a single pass, so a substituted value is never
scanned for further placeholders.

All documents are written to every configuration root (``/etc/slurm`` and
``/etc/slurm-llnl``, distributions disagree on the location) and replaced
atomically; rendering twice with the same input produces the same bytes.
"""



import collections
import os
import pwd
import re

from twisted.python import filepath

from slurmlocal import error, logging, settings, topology



PLACEHOLDER = re.compile(r'@([A-Z][A-Z0-9_]*)@')


PLUGINS = {
    True: ('proctrack/cgroup', 'task/cgroup'),
    False: ('proctrack/linuxproc', 'task/none'),
}


CGROUP_CONFIG = """\
CgroupAutomount=yes
ConstrainCores=yes
ConstrainRAMSpace=yes
"""


DBD_CONFIG = """\
AuthType=auth/munge
DbdHost={controller}
DbdPort={dbdPort}
SlurmUser={slurmUser}
LogFile={logDir}/slurmdbd.log
PidFile=/run/slurmdbd.pid
StorageType=accounting_storage/mysql
StorageHost={dbHost}
StoragePort={dbPort}
StorageUser={dbUser}
StoragePass={dbPass}
StorageLoc={dbName}
"""



def accessString(names):
    """
    Returns the access control options restricting a partition to the
    groups and accounts in ``names``, or an empty string if there are none.
    """

    if not names:
        return ''

    names = ','.join(names)
    return 'AllowGroups={0} AllowAccounts={0}'.format(names)



class Partition(collections.namedtuple('Partition',
        'name nodes default access')):

    __slots__ = ()


    def getConfigEntry(self):
        entry = 'PartitionName={0} Nodes={1} Default={2} MaxTime=INFINITE ' \
                'State=UP'.format(self.name, ','.join(self.nodes),
                        'YES' if self.default else 'NO')

        access = accessString(self.access)

        if access:
            entry += ' ' + access

        return entry



class ClusterConfig(object):
    """
    Typed model of the cluster configuration document.
    """

    def __init__(self, clusterName, topo, tenants, adminAccount='',
            adminExtraGroups=(), isolation=False, dbdPort=6819):
        self.clusterName = clusterName
        self.topology = topo
        self.tenants = list(tenants)
        self.isolation = isolation
        self.dbdPort = dbdPort
        self.proctrackType, self.taskPlugin = PLUGINS[bool(isolation)]

        adminAccess = []
        if adminAccount:
            adminAccess = [adminAccount] + list(adminExtraGroups)
        self.adminAccess = adminAccess

        controller = topo.controller.name
        workers = [node.name for node in topo.workers]

        self.partitions = [
            Partition('debug', [controller] + workers, True, adminAccess),
            Partition('gpu', workers, False, adminAccess),
        ]

        for tenant in self.tenants:
            access = [tenant.name]
            if adminAccount:
                access.append(adminAccount)
            self.partitions.append(Partition(tenant.name, workers, False,
                    access))

        self.validate()


    @classmethod
    def fromConfig(cls, config, topo, tenants):
        return cls(
            config.get('accounting', 'cluster_name') or 'local',
            topo,
            tenants,
            adminAccount=config.get('accounting', 'admin_account'),
            adminExtraGroups=settings.getList(config, 'partitions',
                    'admin_extra_groups'),
            isolation=settings.isEnabled(config.get('isolation', 'cgroup')),
            dbdPort=config.get('accounting', 'dbd_port'),
        )


    def validate(self):
        """
        Checks that every partition only references nodes of the inventory.
        """

        known = set(self.topology.nodeNames())

        for partition in self.partitions:
            unknown = [n for n in partition.nodes if n not in known]
            if unknown:
                raise ValueError('Partition {0!r} references unknown nodes: '
                        '{1}'.format(partition.name, ', '.join(unknown)))


    @property
    def tenantPartitions(self):
        return self.partitions[2:]


    def gresString(self, node):
        if node.gpus > 0:
            return 'Gres=gpu:{0}'.format(node.gpus)
        return ''


    def placeholders(self):
        """
        Returns the value of every placeholder supported in the template.
        """

        topo = self.topology

        return {
            'CLUSTER_NAME': self.clusterName,
            'CTLD': topo.controller.name,
            'NODE1': topo.workerA.name,
            'NODE2': topo.workerB.name,
            'NODE1_GRES': self.gresString(topo.workerA),
            'NODE2_GRES': self.gresString(topo.workerB),
            'PROCTRACK_TYPE': self.proctrackType,
            'TASK_PLUGIN': self.taskPlugin,
            'DEBUG_PARTITION_ACCESS': accessString(self.partitions[0].access),
            'GPU_PARTITION_ACCESS': accessString(self.partitions[1].access),
            'CPUS': str(topo.controller.cpus),
            'MEM_MB': str(topo.controller.memoryMB),
            'DBD_PORT': str(self.dbdPort),
            'TENANT_PARTITIONS': '\n'.join(p.getConfigEntry()
                    for p in self.tenantPartitions),
        }


    def render(self, template):
        return substitute(template, self.placeholders(), complete=True)



def substitute(template, values, complete=False):
    """
    Replaces every ``@NAME@`` placeholder of ``template`` with
    ``values[NAME]``.

    A line made of a single placeholder whose value is empty is dropped
    entirely instead of leaving an empty line behind. An unknown placeholder
    raises ``error.ConfigurationError``, and so does, if ``complete`` is set,
    a name of ``values`` which does not appear in the template.
    """

    seen = set()

    def replace(match):
        seen.add(match.group(1))
        try:
            return values[match.group(1)]
        except KeyError:
            raise error.ConfigurationError('Unknown placeholder {0} in the '
                    'configuration template'.format(match.group(0)))

    lines = []

    for line in template.splitlines(True):
        match = PLACEHOLDER.match(line.strip())

        if match and match.group(0) == line.strip():
            if not replace(match):
                continue

        lines.append(PLACEHOLDER.sub(replace, line))

    missing = sorted(set(values) - seen) if complete else []

    if missing:
        raise error.ConfigurationError('Placeholders missing from the '
                'configuration template: {0}'.format(', '.join(missing)))

    return ''.join(lines)



def writeAtomically(path, content, mode=0o644):
    """
    Writes ``content`` to ``path`` (a ``FilePath``) through a temporary
    sibling which is then renamed over the destination.
    """

    if isinstance(content, str):
        content = content.encode('utf-8')

    path.parent().makedirs(ignoreExistingDirectory=True)

    tmp = path.temporarySibling('.tmp')

    with tmp.open('w') as fh:
        fh.write(content)

    tmp.chmod(mode)
    os.rename(tmp.path, path.path)
    path.changed()



class Renderer(object):
    """
    Renders the configuration documents of the local node and writes them to
    all the configuration roots.
    """

    def __init__(self, config, topo, tenants, log=None):
        self.config = config
        self.topology = topo
        self.cluster = ClusterConfig.fromConfig(config, topo, tenants)

        self.roots = [filepath.FilePath(p) for p in
                settings.getList(config, 'paths', 'config_dirs')]

        self.log = log or logging.Logger(__name__, system='render')


    def loadTemplate(self):
        template = filepath.FilePath(self.config.get('paths', 'template'))

        if not template.isfile():
            raise error.MissingInputError('Configuration template not found '
                    'at {0}'.format(template.path))

        return template.getContent().decode('utf-8')


    def renderSlurmConfig(self):
        return self.cluster.render(self.loadTemplate())


    def renderCgroupConfig(self):
        if self.cluster.isolation:
            return CGROUP_CONFIG
        return None


    def renderGresConfig(self, devices):
        """
        Returns the ``gres.conf`` content binding ``devices`` to the local
        node (empty if there are no devices).
        """

        return ''.join('NodeName={0} Name=gpu File={1}\n'.format(
                self.topology.localName, device) for device in devices)


    def renderDbdConfig(self):
        config = self.config

        return DBD_CONFIG.format(
            controller=self.topology.controller.name,
            dbdPort=config.get('accounting', 'dbd_port'),
            slurmUser=config.get('daemons', 'slurm_user'),
            logDir=config.get('paths', 'log_dir'),
            dbHost=config.get('accounting', 'db_host'),
            dbPort=config.get('accounting', 'db_port'),
            dbUser=config.get('accounting', 'db_user'),
            dbPass=config.get('accounting', 'db_pass'),
            dbName=config.get('accounting', 'db_name'),
        )


    def write(self, name, content, mode=0o644, owner=None):
        """
        Writes the document called ``name`` to every configuration root. If
        ``content`` is ``None`` the document is removed instead.
        """

        for root in self.roots:
            path = root.child(name)

            if content is None:
                if path.exists():
                    path.remove()
                continue

            writeAtomically(path, content, mode)

            if owner:
                self.chown(path, owner)


    def chown(self, path, user):
        try:
            entry = pwd.getpwnam(user)
            os.chown(path.path, entry.pw_uid, entry.pw_gid)
        except (KeyError, OSError) as e:
            self.log.debug('Could not hand {0} over to {1}: {2}', path.path,
                    user, e)


    def renderAll(self):
        """
        Renders and writes every document needed by the local node:

         * ``slurm.conf`` and, with isolation enabled, ``cgroup.conf``;
         * ``gres.conf`` with the GPU bindings of the local node;
         * ``slurmdbd.conf`` on the controller.

        Returns the path of the primary ``slurm.conf``.
        """

        self.log.info('Rendering configuration for {0} (role: {1})',
                self.topology.localName, self.topology.role)

        self.write('slurm.conf', self.renderSlurmConfig())
        self.write('cgroup.conf', self.renderCgroupConfig())

        share = self.topology.localGpuShare()
        devices = topology.gpuDevices(share,
                self.config.get('paths', 'device_dir'))
        self.write('gres.conf', self.renderGresConfig(devices))

        if share:
            self.log.info('Bound {0} GPU device(s) to {1}', len(devices),
                    self.topology.localName)

        if self.topology.isController():
            self.write('slurmdbd.conf', self.renderDbdConfig(), mode=0o600,
                    owner=self.config.get('daemons', 'slurm_user'))

        return self.roots[0].child('slurm.conf')
