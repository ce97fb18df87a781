"""
Bootstraps and supervises the SLURM daemons of one node of the local cluster.
Runs as the entry point of every cluster container.
"""



import argparse
import sys

from twisted.internet import task
from twisted.python import filepath

from slurmlocal import bootstrap, error, logging, settings



def run(reactor, config, log):
    """
    Runs the node bootstrap and translates its outcome to the exit code of
    the process.
    """

    d = bootstrap.NodeBootstrap(reactor, config).run()

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

    parser = argparse.ArgumentParser(description='Bootstraps the SLURM '
            'daemons of a local cluster node.')
    parser.add_argument('-c', '--config', type=filepath.FilePath,
            help='Configuration file')
    parser.add_argument('-d', '--debug', action='store_true',
            help='Log debug messages')
    args = parser.parse_args(argv)

    # Environment variables override the configuration files
    config = settings.loadConfig(args.config)

    log = logging.startConsoleLogging(args.debug)

    task.react(run, [config, log.child('slocald')])



if __name__ == '__main__':
    sys.exit(main())
