# Copyright 2013-2019 Tom Eulenfeld, MIT license
"""
dsmkernel Documentation
=======================

dsmkernel is a Python framework for the calculation of partial derivatives
(sensitivity kernels) of seismic waveforms from the spectral files written
by the Direct Solution Method (DSM) solver.


Method
------

The forward solver stores the wavefield of an event (forward propagation,
FP) and the wavefield of unit forces at a receiver (backward propagation,
BP) in frequency domain at a set of perturbation points.
The partial derivative of the waveform at the receiver with respect to a
structure parameter (e.g. the shear modulus MU) at a perturbation point is
obtained by contracting the strain of the forward wavefield with the strain
of the backward wavefield, weighted by the derivative of the stiffness tensor
with respect to this parameter.
Both wavefields are given in coordinate systems aligned with their great
circles. Therefore the backward wavefield is rotated before the
contraction and the result is rotated onto the great circle between event
and receiver.
The partial derivatives for density are calculated from the displacements,
the partial derivatives for Q from the partial derivatives for MU.
Finally the spectra are convolved with a source time function and
transformed to time domain.

Catalog files store the azimuthal dependence of the wavefield. They are
evaluated at the azimuth of the perturbation point and interpolated between
neighbouring catalog positions.


Installation
------------

Dependencies of dsmkernel are

    * ObsPy_ and its dependencies numpy and scipy,
    * decorator,
    * tqdm for progress bar in batch processing.

dsmkernel can be installed from the source code with ::

    pip install .

The tests can be run with the script ::

    dsmkernel-runtests


Usage
-----

Basic usage: ::

    from dsmkernel import PartialMaker, read_spc
    fp = read_spc('P001.201104170158A.PF.x.y.PSV.spc')
    bp = read_spc('P001.II_PFO.PB.x.y.PSV.spc')
    maker = PartialMaker(fp, bp, sampling_hz=20)
    stream = maker.make_partial_stream('MU')

For batch processing of many pairs of spectral files use the command line
utility ``dsmkernel``. Create an example configuration file with ::

    dsmkernel create

and calculate the partial derivatives with ::

    dsmkernel calc output_directory

.. _ObsPy: http://www.obspy.org/
"""

from dsmkernel.partial import PartialMaker
from dsmkernel.spcfile import SpcFile, read_spc, write_spc
from dsmkernel.spectrum import SpcBody, SpcElement
from dsmkernel.stf import SourceTimeFunctionHandler

__version__ = '0.1.0'
