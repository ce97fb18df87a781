"""
Manages the local cluster from the host: builds and starts the containers,
stops them and follows their logs.
"""



import argparse
import sys

from twisted.internet import defer, task
from twisted.python import filepath

from slurmlocal import error, logging, manager, settings



ACTIONS = ('up', 'down', 'logs', 'help')



def run(reactor, action, cluster, log):
    if action == 'help':
        sys.stdout.write(cluster.usage())
        return defer.succeed(None)

    d = getattr(cluster, action)()

    def gotExitCode(code):
        if code:
            raise SystemExit(code)

    def gotError(failure):
        failure.trap(error.BootstrapError)
        log.error('{0}', failure.value)
        raise SystemExit(failure.value.exitCode)

    d.addCallbacks(gotExitCode, gotError)
    return d



def main(argv=None):
    """
    Main program entry point.
    """

    parser = argparse.ArgumentParser(description='Local SLURM cluster in '
            'Docker (one controller and two compute nodes).')
    parser.add_argument('-c', '--config', type=filepath.FilePath,
            help='Configuration file')
    parser.add_argument('--force', action='store_true',
            help='Overwrite the generated files')
    parser.add_argument('-d', '--debug', action='store_true',
            help='Log debug messages')
    parser.add_argument('action', nargs='?', default='up', choices=ACTIONS,
            help='Action to perform (default: up)')
    args = parser.parse_args(argv)

    config = settings.loadConfig(args.config)

    log = logging.startConsoleLogging(args.debug)

    task.react(lambda reactor: run(reactor, args.action,
            manager.ClusterManager(reactor, config, force=args.force),
            log.child('slocal')))



if __name__ == '__main__':
    sys.exit(main())
