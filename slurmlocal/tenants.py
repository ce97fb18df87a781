"""
Parsing of the tenant list.

A tenant is a named isolation unit mapped to a Unix user and group, a SLURM
account and a partition, all sharing the same name. Tenants are given as a
single comma separated string of ``name[:uid[:gid]]`` entries.
"""



import collections
import re

from slurmlocal import logging, settings



NAME_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')



TenantSpec = collections.namedtuple('TenantSpec', 'name uid gid')



def parseTenants(raw, uidBase, gidBase, log=None):
    """
    Parses the ``raw`` tenant specification string into a list of
    ``TenantSpec`` tuples, in input order.

    Names are lowercased and validated, a missing uid (or gid) defaults to
    ``uidBase`` (or ``gidBase``) plus the index of the entry. Every non-empty
    entry consumes one index, whether it ends up in the registry or not, so
    that fixing or removing a broken entry never shifts the ids derived for
    the others.

    Invalid entries (bad name, non-numeric uid/gid) are skipped with a
    warning; a bad entry never aborts the parsing of the remaining ones.
    Duplicate names are kept: the downstream provisioning steps are
    idempotent.
    """

    if log is None:
        log = logging.Logger(__name__, system='tenants')

    tenants = []
    index = 0

    for item in (raw or '').split(','):
        item = item.strip()

        if not item:
            continue

        slot, index = index, index + 1

        fields = item.split(':', 2) + ['', '']
        name, uid, gid = fields[0].strip().lower(), fields[1], fields[2]

        if not NAME_PATTERN.match(name):
            log.warning('Skipping invalid tenant spec: {0!r}', item)
            continue

        if not uid:
            uid = str(uidBase + slot)
        if not gid:
            gid = str(gidBase + slot)

        if not (settings.NUMERIC.match(uid) and settings.NUMERIC.match(gid)):
            log.warning('Skipping tenant with non-numeric uid/gid: {0!r}',
                    item)
            continue

        tenants.append(TenantSpec(name, int(uid), int(gid)))

    return tenants



def tenantsFromConfig(config, log=None):
    """
    Parses the tenants described by the ``[tenants]`` section.
    """

    return parseTenants(
        config.get('tenants', 'spec'),
        settings.getNumber(config, 'tenants', 'uid_base') or 0,
        settings.getNumber(config, 'tenants', 'gid_base') or 0,
        log,
    )
