"""
Configuration management for the node bootstrap and the management wrapper.

The configuration is loaded exactly once per process: built-in defaults first,
then the optional INI files and finally the ``SLURM_*`` environment variables
set by the compose file. The resulting parser is handed to every component;
nothing reads the environment afterwards.
"""



import configparser
import os
import re



DEFAULT_FILES = [
    '/etc/slurmlocal/slurmlocal.conf',
    os.path.expanduser('~/.slurmlocal.conf'),
]


DEFAULTS = """
[node]
role = all
name =
controller =
worker1 =
worker2 =
gpu_count =

[accounting]
cluster_name = local
db_host = mariadb
db_port = 3306
db_name = slurm_acct_db
db_user = slurm
db_pass = slurm
dbd_port = 6819
admin_account = admin
wait_attempts = 90
wait_interval = 1
ready_attempts = 60
ready_interval = 1

[tenants]
spec =
root = /work/tenants
uid_base = 10000
gid_base = 10000

[host]
user =
uid =
gid =

[isolation]
cgroup = 0

[partitions]
admin_extra_groups =

[secret]
shared_dir = /shared
name = munge.key
size = 1024
wait_attempts = 60
wait_interval = 0.5

[paths]
template = /slurm.conf.template
config_dirs = /etc/slurm /etc/slurm-llnl
munge_dir = /etc/munge
munge_runtime_dirs = /run/munge /var/log/munge
slurm_home = /var/lib/slurm
spool_dirs = /var/spool/slurmctld
slurmd_spool_dir = /var/spool/slurmd
log_dir = /var/log/slurm
device_dir = /dev
meminfo = /proc/meminfo

[daemons]
munged = munged --foreground
slurmdbd = slurmdbd -D
slurmctld = slurmctld -D
slurmd = slurmd -D
sacctmgr = sacctmgr
sinfo = sinfo
scontrol = scontrol
tail = tail
munge_user = munge
slurm_user = slurm

[manager]
project_dir =
state_dir =
container_name = slurm-local
image_name = slurm-local:dev
privileged = false
db_root_pass = slurmroot
db_container_name =
"""


# Environment variable name -> (section, option)
ENVIRONMENT = {
    'SLURM_ROLE': ('node', 'role'),
    'SLURM_NODE_NAME': ('node', 'name'),
    'SLURM_CTLD_HOST': ('node', 'controller'),
    'SLURM_NODE1_NAME': ('node', 'worker1'),
    'SLURM_NODE2_NAME': ('node', 'worker2'),
    'SLURM_GPU_COUNT': ('node', 'gpu_count'),

    'SLURM_CLUSTER_NAME': ('accounting', 'cluster_name'),
    'SLURM_DB_HOST': ('accounting', 'db_host'),
    'SLURM_DB_PORT': ('accounting', 'db_port'),
    'SLURM_DB_NAME': ('accounting', 'db_name'),
    'SLURM_DB_USER': ('accounting', 'db_user'),
    'SLURM_DB_PASS': ('accounting', 'db_pass'),
    'SLURM_DBD_PORT': ('accounting', 'dbd_port'),
    'SLURM_ADMIN_ACCOUNT': ('accounting', 'admin_account'),

    'SLURM_TENANTS': ('tenants', 'spec'),
    'SLURM_TENANTS_DIR': ('tenants', 'root'),
    'SLURM_TENANT_UID_BASE': ('tenants', 'uid_base'),
    'SLURM_TENANT_GID_BASE': ('tenants', 'gid_base'),

    'SLURM_HOST_USER_NAME': ('host', 'user'),
    'SLURM_HOST_UID': ('host', 'uid'),
    'SLURM_HOST_GID': ('host', 'gid'),

    'SLURM_ENABLE_CGROUP': ('isolation', 'cgroup'),

    'SLURM_WORKDIR': ('manager', 'project_dir'),
    'SLURM_LOCAL_DIR': ('manager', 'state_dir'),
    'SLURM_CONTAINER_NAME': ('manager', 'container_name'),
    'SLURM_IMAGE_NAME': ('manager', 'image_name'),
    'SLURM_PRIVILEGED': ('manager', 'privileged'),
    'SLURM_DB_ROOT_PASS': ('manager', 'db_root_pass'),
    'SLURM_DB_CONTAINER_NAME': ('manager', 'db_container_name'),
}


TRUE_VALUES = ('1', 'true', 'yes')

NUMERIC = re.compile(r'[0-9]+\Z')



def loadConfig(path=None, defaults=None, environ=None):
    """
    Loads and parses the INI style configuration using Python's built-in
    configparser module.

    The built-in ``DEFAULTS`` are always loaded first.

    If ``defaults`` (a list of strings) is given, try to load each entry as a
    file, without throwing any error if the operation fails. If it is not
    given, the following locations are tried:

     * /etc/slurmlocal/slurmlocal.conf
     * ~/.slurmlocal.conf

    To completely disable defaults loading, pass in an empty list or ``False``.

    If path (t.p.filepath.FilePath instance) is specified, load it.

    Finally the variables listed in ``ENVIRONMENT`` are read from ``environ``
    (``os.environ`` if not given) and override the file values. Empty
    variables are treated as unset, like ``${VAR:-default}`` does in a shell.

    Returns the RawConfigParser instance used to load and parse the files.
    Interpolation is disabled because passwords may contain ``%`` signs.
    """

    if defaults is None:
        defaults = DEFAULT_FILES

    if environ is None:
        environ = os.environ

    config = configparser.RawConfigParser()
    config.read_string(DEFAULTS)

    if defaults:
        config.read(defaults)

    if path:
        with path.open('r') as fh:
            config.read_string(fh.read().decode('utf-8'), path.path)

    applyEnvironment(config, environ)

    return config



def applyEnvironment(config, environ):
    """
    Copies the non-empty ``SLURM_*`` variables found in ``environ`` into the
    matching ``config`` options.
    """

    for variable, (section, option) in sorted(ENVIRONMENT.items()):
        value = environ.get(variable, '')

        if not value:
            continue

        if not config.has_section(section):
            config.add_section(section)

        config.set(section, option, value)



def isEnabled(value):
    """
    Returns ``True`` if ``value`` is one of ``1``, ``true`` or ``yes``
    (case-insensitive). Every other value, including garbage, is ``False``.
    """

    return (value or '').strip().lower() in TRUE_VALUES



def getNumber(config, section, option):
    """
    Returns the option as an integer if it is a non-negative integer literal,
    ``None`` otherwise.
    """

    value = config.get(section, option, fallback='')

    if NUMERIC.match(value):
        return int(value)

    return None



def getList(config, section, option):
    """
    Returns the whitespace (or comma) separated values of an option.
    """

    value = config.get(section, option, fallback='')
    return [v for v in re.split(r'[\s,]+', value) if v]
