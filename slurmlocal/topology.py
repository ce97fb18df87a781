"""
Node topology and resource inventory of the local cluster.

The cluster always has the same shape: one controller (which also acts as a
compute node of the ``debug`` partition) and two compute nodes. GPUs are only
modelled, never driven: the configured total is split across the two compute
nodes and every compute node binds its share to device files.
"""



import collections
import glob
import os
import socket

from twisted.python import filepath

from slurmlocal import error, settings



CONTROLLER, WORKER, BOTH = 'controller', 'worker', 'both'


ROLE_ALIASES = {
    'all': BOTH,
    'both': BOTH,
    'ctld': CONTROLLER,
    'controller': CONTROLLER,
    'slurmd': WORKER,
    'worker': WORKER,
}


PLACEHOLDER_DEVICE = 'fakegpu{0}'



NodeSpec = collections.namedtuple('NodeSpec',
        'name address role cpus memoryMB gpus')


GpuAllocation = collections.namedtuple('GpuAllocation', 'total nodeA nodeB')



class Topology(collections.namedtuple('Topology',
        'role localName controller workerA workerB gpus')):
    """
    The resolved topology as seen from the local node: the local role and
    name, the three node specifications and the GPU split.
    """

    __slots__ = ()


    @property
    def nodes(self):
        return [self.controller, self.workerA, self.workerB]


    @property
    def workers(self):
        return [self.workerA, self.workerB]


    def nodeNames(self):
        return [node.name for node in self.nodes]


    def isController(self):
        return self.role in (CONTROLLER, BOTH)


    def isWorker(self):
        return self.role in (WORKER, BOTH)


    def localGpuShare(self):
        """
        Returns the number of GPUs bound to the local node. The controller
        (and any node which is not one of the two workers) gets none.
        """

        if self.localName == self.workerA.name:
            return self.gpus.nodeA
        if self.localName == self.workerB.name:
            return self.gpus.nodeB
        return 0



def parseRole(value):
    """
    Maps a role selector (``all``, ``ctld``, ``slurmd`` or their long forms)
    to one of ``CONTROLLER``, ``WORKER`` or ``BOTH``.
    """

    try:
        return ROLE_ALIASES[(value or '').strip().lower()]
    except KeyError:
        raise error.ConfigurationError('Unknown node role: {0!r}'.format(
                value))



def parseGpuCount(value):
    """
    Returns the GPU total described by ``value`` if it is a non-negative
    integer literal and 0 for every other value (empty, negative, garbage).
    """

    if value is not None and settings.NUMERIC.match(str(value)):
        return int(value)
    return 0



def splitGpus(total):
    """
    Splits ``total`` GPUs across the two compute nodes. The first node gets
    the rounded up half, so it never has less GPUs than the second one.
    """

    return GpuAllocation(total, (total + 1) // 2, total // 2)



def cpuCount():
    return os.cpu_count() or 1



def memoryMB(meminfo='/proc/meminfo'):
    """
    Returns the total memory of the host in megabytes as reported by the
    ``MemTotal`` line of ``meminfo``, or 0 if it can't be determined.
    """

    try:
        with open(meminfo) as fh:
            for line in fh:
                if line.startswith('MemTotal:'):
                    return int(line.split()[1]) // 1024
    except (IOError, OSError, ValueError, IndexError):
        pass

    return 0



def resolveTopology(config, cpus=None, memory=None):
    """
    Builds the ``Topology`` of the cluster from the ``[node]`` section of the
    configuration.

    The CPU count and memory size default to the ones of the host this
    process runs on; they are advertised for all three nodes since all the
    containers share the same host.
    """

    role = parseRole(config.get('node', 'role'))

    controller = config.get('node', 'controller') or 'slurm-local'
    worker1 = config.get('node', 'worker1') or controller + '-1'
    worker2 = config.get('node', 'worker2') or controller + '-2'
    localName = config.get('node', 'name') or socket.gethostname()

    if cpus is None:
        cpus = cpuCount()

    if memory is None:
        memory = memoryMB(config.get('paths', 'meminfo'))

    gpus = splitGpus(parseGpuCount(config.get('node', 'gpu_count')))

    return Topology(
        role=role,
        localName=localName,
        controller=NodeSpec(controller, controller, BOTH, cpus, memory, 0),
        workerA=NodeSpec(worker1, worker1, WORKER, cpus, memory, gpus.nodeA),
        workerB=NodeSpec(worker2, worker2, WORKER, cpus, memory, gpus.nodeB),
        gpus=gpus,
    )



def gpuDevices(count, deviceDir='/dev'):
    """
    Returns the paths of the ``count`` device files to bind to the local
    node.

    If real NVIDIA devices (``nvidia0``, ``nvidia1``, ...) are present in
    ``deviceDir``, at most ``count`` of them are returned in lexical order.
    Otherwise ``count`` empty placeholder files are created so that slurmd
    can still schedule against ``gpu:<count>``.
    """

    if count <= 0:
        return []

    real = sorted(glob.glob(os.path.join(deviceDir, 'nvidia[0-9]*')))

    if real:
        return real[:count]

    devices = []

    for i in range(count):
        device = filepath.FilePath(deviceDir).child(
                PLACEHOLDER_DEVICE.format(i))
        device.touch()
        devices.append(device.path)

    return devices
