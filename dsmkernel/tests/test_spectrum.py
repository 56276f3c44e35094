# Copyright 2013-2016 Tom Eulenfeld, MIT license
"""
Tests for spectrum module.
"""
import unittest

import numpy as np

from dsmkernel.spectrum import (ConsistencyError, SpcBody, SpcElement,
                                add_body, interpolate3,
                                interpolate3_backward, to_time_domain)
from dsmkernel.stf import triangle
from dsmkernel.tests.util import random_values


class SpcElementTestCase(unittest.TestCase):

    def test_step0_defaults_to_zero(self):
        element = SpcElement(4)
        self.assertEqual(len(element.u_freq), 5)
        self.assertEqual(element.u_freq[0], 0)
        self.assertIsNone(element.time_series)

    def test_nan_is_rejected(self):
        element = SpcElement(4)
        with self.assertRaises(ConsistencyError):
            element.set_value(2, np.nan)
        values = np.ones(5, dtype=complex)
        values[3] = np.nan + 1j
        with self.assertRaises(ConsistencyError):
            element.set_values(values)
        with self.assertRaises(ConsistencyError):
            element.set_values(np.ones(4))

    def test_add_and_multiply(self):
        e1 = SpcElement(2)
        e1.set_values([0, 1 + 1j, 2])
        e2 = e1.copy()
        e2.map_multiply(2).add(e1)
        np.testing.assert_array_equal(e2.u_freq, [0, 3 + 3j, 6])
        np.testing.assert_array_equal(e1.u_freq, [0, 1 + 1j, 2])
        with self.assertRaises(ConsistencyError):
            e1.add(SpcElement(3))

    def test_differentiate(self):
        tlen = 2 * np.pi
        element = SpcElement(2)
        element.set_values([5, 1 + 2j, 3 - 1j])
        element.differentiate(tlen)
        # (re, im) -> (im c, -re c) with c = 2 pi i / tlen
        np.testing.assert_array_almost_equal(element.u_freq,
                                             [0, 2 - 1j, -2 - 6j])

    def test_source_time_function(self):
        stf = triangle(4, 100., 20., 5.)
        element = SpcElement(4)
        element.set_values(np.ones(5))
        element.apply_source_time_function(None)
        np.testing.assert_array_equal(element.u_freq, np.ones(5))
        element.apply_source_time_function(stf)
        self.assertEqual(element.u_freq[0], 1)
        np.testing.assert_array_almost_equal(element.u_freq[1:],
                                             stf.spectrum)

    def test_no_mutation_after_conversion(self):
        element = SpcElement(4)
        element.set_values(random_values(5))
        data = element.convert_to_time_domain(16, 2., 0.)
        self.assertEqual(len(data), 16)
        self.assertIs(element.time_series, data)
        with self.assertRaises(ValueError):
            element.map_multiply(2)
        with self.assertRaises(ValueError):
            element.differentiate(100.)
        with self.assertRaises(ValueError):
            element.convert_to_time_domain(16, 2., 0.)

    def test_to_time_domain(self):
        u = np.zeros(5, dtype=complex)
        u[1] = 1
        k = np.arange(16)
        expected = 250 * np.cos(2 * np.pi * k / 16)
        np.testing.assert_array_almost_equal(to_time_domain(u, 16, 2., 0.),
                                             expected)
        # damping is removed
        data = to_time_domain(u, 16, 2., 0.1)
        np.testing.assert_array_almost_equal(
            data, expected * np.exp(0.1 * k / 2.))
        with self.assertRaises(ValueError):
            to_time_domain(u, 6, 2., 0.)

    def test_damping_is_undone(self):
        npts, sampling_hz, omegai = 16, 2., 0.05
        t = np.arange(npts) / sampling_hz
        impulse = np.zeros(npts)
        impulse[5] = 3.
        # spectrum of the damped impulse as written by the solver
        u = np.fft.fft(impulse * np.exp(-omegai * t))
        u = u[:npts // 2 + 1] / (1e3 * sampling_hz)
        data = to_time_domain(u, npts, sampling_hz, omegai)
        np.testing.assert_array_almost_equal(data, impulse)


class SpcBodyTestCase(unittest.TestCase):

    def setUp(self):
        self.b1 = SpcBody.from_spectra(random_values((9, 5), seed=1))
        self.b2 = SpcBody.from_spectra(random_values((9, 5), seed=2))

    def test_from_spectra(self):
        spectra = random_values((3, 5))
        body = SpcBody.from_spectra(spectra)
        self.assertEqual(body.nelement, 3)
        self.assertEqual(body.np, 4)
        np.testing.assert_array_equal(body.spectra, spectra)
        np.testing.assert_array_equal(body.get_spectrum(1), spectra[1])
        body.set_values(0, [1, 2, 3])
        np.testing.assert_array_equal(body.spectra[:, 0], [1, 2, 3])
        with self.assertRaises(ConsistencyError):
            body.set_values(0, [1, 2])

    def test_add_body(self):
        body = add_body(self.b1, self.b2)
        np.testing.assert_array_almost_equal(
            body.spectra, self.b1.spectra + self.b2.spectra)
        with self.assertRaises(ConsistencyError):
            add_body(self.b1, SpcBody(27, 4))
        with self.assertRaises(ConsistencyError):
            add_body(self.b1, SpcBody(9, 8))

    def test_interpolate(self):
        s1, s2 = self.b1.spectra, self.b2.spectra
        np.testing.assert_array_almost_equal(
            self.b1.interpolate(self.b2, 0).spectra, s1)
        np.testing.assert_array_almost_equal(
            self.b1.interpolate(self.b2, 1).spectra, s2)
        np.testing.assert_array_almost_equal(
            self.b1.interpolate(self.b2, 0.5).spectra, (s1 + s2) / 2)
        for u in (-0.1, 1.5):
            with self.assertRaises(ValueError):
                self.b1.interpolate(self.b2, u)
        # inputs are not changed
        np.testing.assert_array_equal(self.b1.spectra, s1)
        np.testing.assert_array_equal(self.b2.spectra, s2)

    def test_interpolate3(self):
        # quadratic function is interpolated exactly
        a, b, c = [random_values((3, 5), seed=i) for i in range(3)]
        bodies = [SpcBody.from_spectra(a + b * x + c * x ** 2)
                  for x in (0, 1, 2)]
        x = 0.7
        body = interpolate3(*bodies, dh=(x, x - 1, x - 2))
        np.testing.assert_array_almost_equal(body.spectra,
                                             a + b * x + c * x ** 2)
        body = interpolate3_backward(bodies[1], bodies[0], bodies[2],
                                     dh=(x - 1, x, x - 2))
        np.testing.assert_array_almost_equal(body.spectra,
                                             a + b * x + c * x ** 2)
        # at a catalog position the body is reproduced
        body = interpolate3(*bodies, dh=(1, 0, -1))
        np.testing.assert_array_almost_equal(body.spectra,
                                             bodies[1].spectra)
        with self.assertRaises(ConsistencyError):
            interpolate3(bodies[0], bodies[1], SpcBody(3, 8), dh=(x, x, x))

    def test_interpolate3_parabola(self):
        # values 1, 0, 1 at positions -1, 0, 1
        bodies = [SpcBody.from_spectra(np.full((3, 5), v)) for v in (1, 0, 1)]
        for x in (-1, -0.5, 0.3, 1, 1.5):
            body = interpolate3(*bodies, dh=(x + 1, x, x - 1))
            np.testing.assert_array_almost_equal(body.spectra, x ** 2)

    def test_convert_to_time_domain(self):
        self.b1.convert_to_time_domain(16, 2., 1e-3)
        for i in range(9):
            self.assertEqual(len(self.b1.get_time_series(i)), 16)
            self.assertTrue(np.all(np.isreal(self.b1.get_time_series(i))))


def suite():
    loader = unittest.defaultTestLoader
    return unittest.TestSuite([
        loader.loadTestsFromTestCase(SpcElementTestCase),
        loader.loadTestsFromTestCase(SpcBodyTestCase)])


if __name__ == '__main__':
    unittest.main(defaultTest='suite')
