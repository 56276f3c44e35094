# Copyright 2013-2016 Tom Eulenfeld, MIT license
"""
Tests for elastic module.
"""
import unittest

import numpy as np

from dsmkernel.elastic import (VARIABLE_TYPES, StructureModel,
                               load_structure, voigt, weighting_factor)
from dsmkernel.tests.util import tempdir


class WeightingFactorTestCase(unittest.TestCase):

    def test_voigt(self):
        self.assertEqual([voigt(i, i) for i in range(3)], [0, 1, 2])
        self.assertEqual((voigt(1, 2), voigt(0, 2), voigt(0, 1)), (3, 4, 5))
        self.assertEqual(voigt(2, 1), voigt(1, 2))

    def test_isotropic(self):
        d = np.eye(3)
        mu = (np.einsum('jr,qs->jqrs', d, d) +
              np.einsum('js,qr->jqrs', d, d))
        lambda_ = np.einsum('jq,rs->jqrs', d, d)
        np.testing.assert_array_equal(weighting_factor('MU'), mu)
        np.testing.assert_array_equal(weighting_factor('lambda'), lambda_)

    def test_symmetry(self):
        for variable in VARIABLE_TYPES:
            if variable in ('RHO', 'Q'):
                continue
            w = weighting_factor(variable)
            self.assertEqual(w.shape, (3, 3, 3, 3))
            np.testing.assert_array_equal(w, np.transpose(w, (1, 0, 2, 3)))
            np.testing.assert_array_equal(w, np.transpose(w, (2, 3, 0, 1)))
            self.assertTrue(np.any(w))

    def test_transversely_isotropic(self):
        c = weighting_factor('C')
        self.assertEqual(c[0, 0, 0, 0], 1)
        self.assertEqual(np.sum(c), 1)
        n = weighting_factor('N')
        self.assertEqual(n[1, 1, 2, 2], -2)
        self.assertEqual(n[1, 2, 1, 2], 1)
        self.assertEqual(n[0, 1, 0, 1], 0)
        l_ = weighting_factor('L')
        self.assertEqual(l_[0, 1, 0, 1], 1)
        self.assertEqual(l_[1, 2, 1, 2], 0)

    def test_invalid(self):
        for variable in ('RHO', 'Q', 'XYZ'):
            with self.assertRaises(ValueError):
                weighting_factor(variable)
        w = weighting_factor('MU')
        self.assertIs(w, weighting_factor('MU'))
        with self.assertRaises(ValueError):
            w[0, 0, 0, 0] = 5


class StructureTestCase(unittest.TestCase):

    def test_prem(self):
        model = load_structure()
        self.assertIs(model, load_structure('prem'))
        m = model.medium_at(6000.)
        x = 6000. / 6371
        self.assertAlmostEqual(m.rho, 7.1089 - 3.8045 * x)
        self.assertAlmostEqual(m.vs, 8.9496 - 4.4597 * x)
        self.assertAlmostEqual(m.mu, m.rho * m.vs ** 2)
        self.assertEqual(m.qmu, 143.)
        # ocean and outer core
        self.assertEqual(model.medium_at(6371.).mu, 0)
        self.assertEqual(model.mu(3000.), 0)
        self.assertEqual(model.medium_at(3000.).qmu, 0)
        with self.assertRaises(ValueError):
            model.medium_at(6400.)

    def test_load_structure_file(self):
        line = '0 6371 3 0 0 0 8 0 0 0 4 0 0 0 100 1000\n'
        with tempdir():
            with open('model.dat', 'w') as f:
                f.write('# homogeneous\n' + line)
            model = load_structure('model.dat')
            with open('bad.dat', 'w') as f:
                f.write('0 6371 3 0 0\n')
            with self.assertRaises(ValueError):
                load_structure('bad.dat')
        self.assertIsInstance(model, StructureModel)
        m = model.medium_at(1000.)
        self.assertEqual((m.rho, m.vp, m.vs, m.qmu), (3, 8, 4, 100))
        self.assertEqual(m.mu, 48)
        self.assertEqual(m.lambda_, 3 * 64 - 96)
        self.assertEqual(m.F, m.lambda_)


def suite():
    loader = unittest.defaultTestLoader
    return unittest.TestSuite([
        loader.loadTestsFromTestCase(WeightingFactorTestCase),
        loader.loadTestsFromTestCase(StructureTestCase)])


if __name__ == '__main__':
    unittest.main(defaultTest='suite')
