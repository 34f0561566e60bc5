import numpy as np
import pytest

from gait_signature.features.pca import learn_basis, project
from gait_signature.matching.matcher import distance_matrix


def _gallery() -> np.ndarray:
    return np.random.default_rng(11).normal(size=(5, 8))


def test_projection_shapes():
    basis = learn_basis(_gallery(), max_components=3)
    assert basis.num_components == 3
    assert project(_gallery(), basis).shape == (5, 3)
    assert project(_gallery()[0], basis).shape == (3,)


def test_gallery_distances_survive_full_rank_projection():
    gallery = _gallery()
    basis = learn_basis(gallery, max_components=gallery.shape[0] - 1)
    reduced = project(gallery, basis)
    np.testing.assert_allclose(
        distance_matrix(reduced, reduced), distance_matrix(gallery, gallery), atol=1e-8
    )


def test_basis_does_not_depend_on_probes():
    gallery = _gallery()
    probes_a = np.random.default_rng(1).normal(size=(3, 8))
    probes_b = np.random.default_rng(2).normal(size=(7, 8))

    basis = learn_basis(gallery, max_components=4)
    before = project(gallery, basis)
    project(probes_a, basis)
    project(probes_b, basis)
    again = learn_basis(gallery, max_components=4)
    np.testing.assert_allclose(project(gallery, again), before)


def test_learn_basis_needs_two_vectors_and_matching_lengths():
    with pytest.raises(ValueError):
        learn_basis(np.ones((1, 4)))
    basis = learn_basis(_gallery(), max_components=2)
    with pytest.raises(ValueError):
        project(np.ones(5), basis)
