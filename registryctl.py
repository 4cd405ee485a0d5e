#!/usr/bin/env python3
#
# (C) 2024, Nicolai Langfeldt, Schibsted Products and Technology
#
# registryctl: Keep a list of docker V2 registries and list, inspect
# and delete what is in them.
#
# Usage:
#   ./registryctl.py connect https://registry.example.com/v2 myuser
#   ./registryctl.py connect --monolith -m library/busybox https://registry-1.docker.io/v2 me
#   ./registryctl.py ls -d
#   ./registryctl.py rm registry.example.com myimage:latest
#
#   See -h for more options
#
# The list of registries is kept in $STATEDIR/registries.json (STATEDIR
# defaults to the current directory), passwords go to the system
# keyring.  The password is read from $REGISTRY_PASSWORD if set,
# otherwise it is prompted for.
#

import os
import sys
import signal
import asyncio
import getpass
import argparse
from datetime import datetime, timezone

import requests
from dateutil import parser as dateparser

from Spinner import Spinner
from Tag import TagV2
from Repository import RepositoryV2
from Registry import DockerCredentials
from RegistryProvider import RegistryProvider
from stores import JsonStateStore, KeyringSecretStore
from cancellable import CancellationToken, CancelError
from registryerrors import RegistryError

_epoch = datetime.min.replace(tzinfo=timezone.utc)


def make_provider(args):
    savedir = os.environ.get('STATEDIR', '.')

    provider = RegistryProvider(JsonStateStore(os.path.join(savedir, 'registries.json')),
                                KeyringSecretStore())
    provider.verbose = args.verbose
    provider.debug = args.debug
    provider.dry_run = getattr(args, 'dry_run', False)

    return provider


def parse_created(created):
    """Parse the created time of a manifest, for sorting.  Missing
    times sort first."""

    if not created:
        return _epoch

    when = dateparser.parse(created)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    return when


def split_image(image):
    """Split repo:tag or repo@digest into (repo, reference).  Just repo
    gives (repo, None)."""

    if '@' in image:
        return tuple(image.split('@', 1))

    # The last : is the tag, an earlier one is part of a host:port
    if ':' in image and '/' not in image.rsplit(':', 1)[1]:
        return tuple(image.rsplit(':', 1))

    return (image, None)


async def find_registry(provider, name, token):
    for reg in await provider.get_registries(False, token):
        if name in (reg.registry_id, reg.label):
            return reg

    sys.exit("No registry named %s, see registryctl ls" % name)


async def cmd_connect(provider, args, token):
    password = os.environ.get('REGISTRY_PASSWORD')
    if password is None:
        password = getpass.getpass("Password for %s at %s: " % (args.account, args.service))

    is_monolith = args.monolith or bool(args.repository)
    credentials = DockerCredentials(service=args.service, account=args.account, secret=password)

    reg = await provider.connect_registry(token, credentials, is_monolith=is_monolith,
                                          monolith_repositories=args.repository if is_monolith else None)

    print("Connected %s as %s" % (reg.label, reg.registry_id))


async def cmd_disconnect(provider, args, token):
    reg = await find_registry(provider, args.registry, token)
    await provider.disconnect_registry(reg)

    print("Disconnected %s" % args.registry)


async def cmd_add_repo(provider, args, token):
    reg = await find_registry(provider, args.registry, token)
    reg.connect_monolith_repository(args.repository)


async def cmd_remove_repo(provider, args, token):
    reg = await find_registry(provider, args.registry, token)
    reg.disconnect_monolith_repository(args.repository)


async def cmd_ls(provider, args, token):
    spinner = Spinner(kind=args.spinner)

    num_repos = 0
    ntags = 0

    registries = await provider.get_registries(False, token)
    if args.registry:
        registries = [await find_registry(provider, args.registry, token)]

    for reg in registries:
        print("%s (%s%s)" % (reg.label, reg.registry_id, ", monolith" if reg.is_monolith else ""))

        repositories = await spinner.spin_while(reg.get_repositories(False, token))
        if args.repository:
            repositories = [r for r in repositories if r.name in args.repository]

        for repo in repositories:
            num_repos += 1
            tags = await spinner.spin_while(repo.get_tags(False, token))
            ntags += len(tags)

            if args.digest:
                tags = sorted(tags, key=lambda t: parse_created(t.manifest.created))

            for tag in tags:
                if args.digest:
                    created = tag.manifest.created
                    if created:
                        created = parse_created(created).strftime("%Y-%m-%d %H:%M:%S")
                    print("  %s:%s@%s (%s)" % (repo.name, tag.reference, tag.manifest.digest,
                                               created or "no created time"))
                else:
                    print("  %s:%s" % (repo.name, tag.reference))

    print("Number of repositories: %d, tags: %d" % (num_repos, ntags), file=sys.stderr)


async def cmd_rm(provider, args, token):
    reg = await find_registry(provider, args.registry, token)

    # Token auth registries only send their challenge on the catalog
    if not reg.is_monolith:
        await reg.get_repositories(False, token)

    for image in args.image:
        (repo_name, reference) = split_image(image)
        repo = RepositoryV2(reg, repo_name)

        if reference is None:
            print("Deleting all tags in %s" % repo_name)
            await repo.delete(token)
        else:
            print("Deleting %s" % image)
            await TagV2(repo, reference).delete(token)


async def run(args, provider):
    token = CancellationToken()

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        # No loop signal handlers here (windows, or not the main
        # thread), ^C will raise KeyboardInterrupt instead
        pass

    await args.func(provider, args, token)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Keep track of and manage docker V2 registries')
    parser.add_argument('-v', '--verbose', action='store_true', default=False,
                        help='Tell what is being changed')
    parser.add_argument('--debug', action='store_true', default=False,
                        help='Show every HTTP request')
    parser.add_argument('-s', '--spinner', action="store", type=int, default=None,
                        help='Select what kind of progress spinner you prefer, default random')

    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('connect', help='Connect a registry')
    p.add_argument('--monolith', action='store_true', default=False,
                   help='Do not use the catalog, only the repositories given with -m')
    p.add_argument('-m', '--repository', action='append',
                   help='Monolith repository (can be repeated, implies --monolith)')
    p.add_argument('service', help='Registry URL, e.g. https://registry.example.com/v2')
    p.add_argument('account', help='User name')
    p.set_defaults(func=cmd_connect)

    p = sub.add_parser('disconnect', help='Forget a registry and its password')
    p.add_argument('registry', help='Registry name or ID')
    p.set_defaults(func=cmd_disconnect)

    p = sub.add_parser('ls', help='List registries, repositories and tags')
    p.add_argument('-d', '--digest', action='store_true',
                   help='Show digest and creation time of tags, oldest first')
    p.add_argument('-r', '--repository', action='append',
                   help='Only this repository (can be repeated)')
    p.add_argument('registry', nargs='?', help='Only this registry (name or ID)')
    p.set_defaults(func=cmd_ls)

    p = sub.add_parser('rm', help='Delete tags (not supported on monolith registries using token auth)')
    p.add_argument('-n', '--dry-run', action='store_true', default=False,
                   help='Do not delete anything, just tell')
    p.add_argument('registry', help='Registry name or ID')
    p.add_argument('image', nargs='+',
                   help='repo:tag or repo@digest to delete, just repo deletes all tags')
    p.set_defaults(func=cmd_rm)

    p = sub.add_parser('add-repo', help='Add a repository to a monolith registry')
    p.add_argument('registry', help='Registry name or ID')
    p.add_argument('repository', help='Repository name')
    p.set_defaults(func=cmd_add_repo)

    p = sub.add_parser('remove-repo', help='Remove a repository from a monolith registry')
    p.add_argument('registry', help='Registry name or ID')
    p.add_argument('repository', help='Repository name')
    p.set_defaults(func=cmd_remove_repo)

    args = parser.parse_args(argv)
    provider = make_provider(args)

    try:
        asyncio.run(run(args, provider))

    except CancelError:
        print("Cancelled", file=sys.stderr)
        sys.exit(130)

    except requests.exceptions.ConnectionError as e:
        sys.exit("Failed to connect: %s" % e)

    except RegistryError as e:
        sys.exit("Error: %s" % e)


if __name__ == "__main__":
    main()
