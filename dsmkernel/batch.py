# Copyright 2013-2019 Tom Eulenfeld, MIT license
"""
dsmkernel: partial derivatives from DSM spectra - batch command line utility
"""

import argparse
from argparse import SUPPRESS
import collections
from concurrent.futures import ThreadPoolExecutor, as_completed
from importlib.resources import files
import json
import logging
import os
from os.path import join
import shutil
import threading

from obspy import Stream

from dsmkernel.elastic import load_structure
from dsmkernel.partial import PartialMaker
from dsmkernel.spcfile import SpcFormatError, combine, read_spc
from dsmkernel.spectrum import ConsistencyError
from dsmkernel.stf import (SourceTimeFunctionHandler, read_stf_catalog,
                           read_user_stfs)

from tqdm import tqdm


log = logging.getLogger(__name__)

FNAMES = {
    'SAC': join('{root}', '{partial.event_id}',
                '{station}.{partial.event_id}.{point}.{partial.variable}.'
                '{partial.radius:.1f}.{channel}.SAC'),
    'PICKLE': '{root}.pickle'}

#: errors of single tasks which do not stop the other tasks
TASK_ERRORS = (SpcFormatError, ConsistencyError, IOError, ValueError)

#: forward and backward files (file name or list of PSV and SH file names),
#: event id and half duration for the source time function, backward files
#: of catalog neighbours and their distances, azimuth at which catalog files
#: are evaluated (default: azimuth of the run)
PartialTask = collections.namedtuple(
    'PartialTask', 'fp bp event_id half_duration bp2 bp3 dh phi',
    defaults=(None, None, None, None, None, None))


def _create_dir(filename):
    """
    Create directory of filname if it does not exist.
    """
    head = os.path.dirname(filename)
    if head != '' and not os.path.isdir(head):
        os.makedirs(head, exist_ok=True)


def _point_label(partial):
    """Id of the perturbation point or its coordinates if the id is unknown"""
    if partial.point_id:
        return partial.point_id
    return '%.3f_%.3f' % (partial.point_latitude, partial.point_longitude)


def write(stream, root, format):
    """Write stream to one or more files depending on format."""
    format = format.upper()
    if len(stream) == 0:
        return
    fname_pattern = FNAMES[format]
    if format == 'SAC':
        for tr in stream:
            fname = fname_pattern.format(
                root=root, point=_point_label(tr.stats.partial), **tr.stats)
            _create_dir(fname)
            tr.write(fname, format)
    else:
        fname = fname_pattern.format(root=root)
        _create_dir(fname)
        stream.write(fname, format)


class SpcCache(object):

    """
    Decode each spectral file once and share it read-only between tasks.

    Files are cached per file name and azimuth at which catalog files are
    evaluated.

    :param phi: default azimuth in radians
    :param kwargs: passed to `~dsmkernel.spcfile.read_spc`
    """

    def __init__(self, phi=0., **kwargs):
        self.phi = phi
        self.kwargs = kwargs
        self._files = {}
        self._lock = threading.Lock()

    def get(self, fname, phi=None):
        phi = float(self.phi if phi is None else phi)
        key = (fname, phi)
        with self._lock:
            spc = self._files.get(key)
        if spc is None:
            spc = read_spc(fname, phi=phi, **self.kwargs)
            with self._lock:
                spc = self._files.setdefault(key, spc)
        return spc

    def load(self, fnames, phi=None):
        """Load file or combine list of files (PSV and SH parts)."""
        if fnames is None:
            return None
        if isinstance(fnames, str):
            return self.get(fnames, phi=phi)
        spcs = [self.get(fname, phi=phi) for fname in fnames]
        spc = spcs[0]
        for other in spcs[1:]:
            spc = combine(spc, other)
        return spc


def _task_id(task):
    fp = task.fp if isinstance(task.fp, str) else task.fp[0]
    bp = task.bp if isinstance(task.bp, str) else task.bp[0]
    return '%s x %s' % (os.path.basename(fp), os.path.basename(bp))


def calc_task(task, variables, sampling_hz, components='ZRT', cache=None,
              stf_handler=None, **kwargs):
    """
    Calculate partial derivatives of one task.

    :param task: `PartialTask`
    :param kwargs: passed to `~dsmkernel.partial.PartialMaker`
    :return: obspy Stream with one trace per body, component and variable
    """
    if cache is None:
        cache = SpcCache()
    fp = cache.load(task.fp, phi=task.phi)
    bp = cache.load(task.bp, phi=task.phi)
    bp2 = cache.load(task.bp2, phi=task.phi)
    bp3 = cache.load(task.bp3, phi=task.phi)
    stf = None
    if stf_handler is not None:
        event_id = task.event_id or fp.source_id
        stf = stf_handler.create(fp.np, fp.tlen, sampling_hz, event_id,
                                 task.half_duration)
    maker = PartialMaker(fp, bp, sampling_hz, bp2=bp2, bp3=bp3, dh=task.dh,
                         stf=stf, **kwargs)
    stream = Stream()
    for variable in variables:
        stream += maker.make_partial_stream(variable, components=components)
    if task.event_id is not None:
        for tr in stream:
            tr.stats.partial.event_id = task.event_id
    return stream


def compute_partials(tasks, variables, sampling_hz, components='ZRT',
                     stf_handler=None, workers=None, pbar=None, cache=None,
                     **kwargs):
    """
    Calculate partial derivatives of many tasks in a thread pool.

    Tasks which fail with one of `TASK_ERRORS` are logged and omitted.

    :param tasks: list of `PartialTask`
    :param variables: list of variables, e.g. ['MU', 'LAMBDA']
    :param workers: maximal number of threads
    :param pbar: tqdm_ instance for displaying a progressbar
    :param kwargs: passed to `~dsmkernel.partial.PartialMaker`
    :return: dictionary with traces of keys (event_id, receiver_id,
        point_id, radius, component, variable) and list of failed tasks with
        exceptions

    .. _tqdm: https://pypi.python.org/pypi/tqdm
    """
    if cache is None:
        cache = SpcCache()
    if pbar is not None:
        pbar.total = len(tasks)
    results = {}
    failures = []
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(calc_task, task, variables, sampling_hz,
                                   components=components, cache=cache,
                                   stf_handler=stf_handler, **kwargs): task
                   for task in tasks}
        for future in as_completed(futures):
            task = futures[future]
            if pbar is not None:
                pbar.update(1)
            try:
                stream = future.result()
            except TASK_ERRORS as ex:
                log.warning('skip task %s: %s', _task_id(task), ex)
                failures.append((task, ex))
                continue
            for tr in stream:
                p = tr.stats.partial
                key = (p.event_id, tr.stats.station, _point_label(p),
                       p.radius, tr.stats.channel, p.variable)
                results[key] = tr
    if failures:
        log.warning('%d of %d tasks failed', len(failures), len(tasks))
    return results, failures


class ConfigJSONDecoder(json.JSONDecoder):
    """Strip lines from comments."""

    def decode(self, s):
        s = '\n'.join(l.split('#', 1)[0] for l in s.split('\n'))
        return super(ConfigJSONDecoder, self).decode(s)


class ParseError(Exception):
    pass


def run(command, conf=None, **kw):
    """Create example configuration file or load config.

    After that call `run_commands`.
    """
    if command == 'create':
        if conf is None:
            conf = 'conf.json'
        src = str(files('dsmkernel').joinpath('example', 'conf.json'))
        shutil.copyfile(src, conf)
        return
    # Load configuration
    if conf in ('None', 'none', 'null', ''):
        conf = None
    if conf and command != 'print':
        try:
            with open(conf) as f:
                conf = json.load(f, cls=ConfigJSONDecoder)
        except ValueError as ex:
            print('Error while parsing the configuration: %s' % ex)
            return
        except IOError as ex:
            print(ex)
            return
        # Populate kwargs with conf, but prefer kwargs
        conf.update(kw)
        kw = conf
    run_commands(command, **kw)


DICT_OPTIONS = ['stf', 'maker']


def _init_stf_handler(type='none', catalog=None, user_dir=None, check=False):
    if catalog is not None:
        catalog = read_stf_catalog(catalog)
    user_functions = read_user_stfs(user_dir) if user_dir else None
    return SourceTimeFunctionHandler(type, catalog=catalog,
                                     user_functions=user_functions,
                                     check=check)


def _init_tasks(tasks):
    ret = []
    for task in tasks:
        if isinstance(task, dict):
            try:
                ret.append(PartialTask(**task))
            except TypeError as ex:
                raise ParseError('Invalid task %s: %s' % (task, ex))
        else:
            ret.append(PartialTask(*task))
    return ret


def run_commands(command, objects=None, tasks=(), variables=('MU',),
                 components='ZRT', sampling_hz=20., structure='prem',
                 workers=None, phi=0., path_out=None, format='SAC', **kw):
    """Load files, calculate partial derivatives and write result files."""
    for opt in kw:
        if opt not in DICT_OPTIONS:
            raise ParseError('Unknown config option: %s' % opt)
    for opt in DICT_OPTIONS:
        d = kw.setdefault(opt, {})
        if isinstance(d, str):
            kw[opt] = json.loads(d)
    if isinstance(variables, str):
        variables = [v.strip() for v in variables.split(',')]
    if command == 'print':
        for fname in objects:
            print(read_spc(fname, phi=float(phi)))
        return
    if format.upper() not in FNAMES:
        raise ParseError('Unsupported format: %s' % format)
    tasks = _init_tasks(tasks)
    try:
        stf_handler = _init_stf_handler(**kw['stf'])
    except (TypeError, ValueError, IOError) as ex:
        raise ParseError('Invalid stf option: %s' % ex)
    structure = load_structure(structure) if structure else None
    if workers is not None:
        workers = int(workers)
    cache = SpcCache(phi=float(phi))
    results, failures = compute_partials(
        tasks, variables, float(sampling_hz), components=components,
        stf_handler=stf_handler, workers=workers, pbar=tqdm(), cache=cache,
        structure=structure, **kw['maker'])
    stream = Stream(traces=[results[key] for key in sorted(results, key=str)])
    write(stream, path_out, format)
    print('%d traces written, %d of %d tasks failed' % (
        len(stream), len(failures), len(tasks)))


def run_cli(args=None):
    """Command line interface of dsmkernel.

    After parsing call `run`.
    """
    from dsmkernel import __version__
    p = argparse.ArgumentParser(description=__doc__)
    version = '%(prog)s ' + __version__
    p.add_argument('-v', '--version', action='version', version=version)
    msg = 'Configuration file to load (default: conf.json)'
    p.add_argument('-c', '--conf', default='conf.json', help=msg)
    msg = 'Logging level (default: WARNING)'
    p.add_argument('--loglevel', default='WARNING', help=msg,
                   choices=('DEBUG', 'INFO', 'WARNING', 'ERROR'))

    sub = p.add_subparsers(title='commands', dest='command')
    msg = 'create config file in current directory'
    sub.add_parser('create', help=msg)
    msg = 'calculate partial derivatives'
    p_calc = sub.add_parser('calc', help=msg)
    msg = 'print header information of spectral files'
    p_print = sub.add_parser('print', help=msg)

    msg = 'output directory (SAC) or output file basename (PICKLE)'
    p_calc.add_argument('path_out', help=msg)
    msg = 'spectral files'
    p_print.add_argument('objects', nargs='+', help=msg)

    msg = ('Use these flags to overwrite values in the config file. '
           'See the example configuration file for a description of '
           'these options.')
    g2 = p.add_argument_group('optional config arguments', description=msg)
    features_str = ('variables', 'components', 'sampling-hz', 'structure',
                    'workers', 'phi', 'format')
    for f in features_str:
        g2.add_argument('--' + f, default=SUPPRESS)
    for f in DICT_OPTIONS:
        g2.add_argument('--' + f.replace('_', '-'), default=SUPPRESS)

    # Get command line arguments and start run
    args = vars(p.parse_args(args))
    if args.get('command') is None:
        p.print_usage()
        return
    logging.basicConfig(level=args.pop('loglevel'))
    try:
        run(**args)
    except ParseError as ex:
        p.error(ex)
