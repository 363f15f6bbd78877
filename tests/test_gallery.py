from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

from facerecog_live.errors import DetectionSetupError
from facerecog_live.gallery import (build_labeled_descriptors, build_reference_gallery,
                                    load_reference_image, reference_image_paths)

from conftest import FakeReferencePipeline, face, unit

LABELS = ["Virat", "Messi", "Prakash"]


def path_loader(path):
    return str(path)


def all_faces(labels_dir, labels=LABELS, per_label=2):
    faces = {}
    n = 0
    for label in labels:
        for path in reference_image_paths(label, labels_dir, per_label):
            faces[str(path)] = face(10, 10, 50, 50, descriptor=unit(n))
            n += 1
    return faces


def test_reference_image_layout(tmp_path):
    paths = reference_image_paths("Messi", tmp_path, 2)

    assert paths == [tmp_path / "Messi" / "1.png", tmp_path / "Messi" / "2.png"]


def test_three_identities_two_images_each(tmp_path):
    pipeline = FakeReferencePipeline(all_faces(tmp_path))

    gallery = build_reference_gallery(pipeline, labels=LABELS, labels_dir=tmp_path,
                                      images_per_label=2, image_loader=path_loader)

    assert [identity.label for identity in gallery] == LABELS
    assert all(len(identity.descriptors) == 2 for identity in gallery)
    assert len(pipeline.seen) == 6


def test_reference_image_without_face_is_skipped(tmp_path, caplog):
    faces = all_faces(tmp_path)
    missing = str(tmp_path / "Messi" / "2.png")
    faces[missing] = None
    pipeline = FakeReferencePipeline(faces)

    gallery = build_reference_gallery(pipeline, labels=LABELS, labels_dir=tmp_path,
                                      images_per_label=2, image_loader=path_loader)

    by_label = {identity.label: identity for identity in gallery}
    assert len(by_label["Messi"].descriptors) == 1
    assert len(by_label["Virat"].descriptors) == 2
    assert "No face detected" in caplog.text


def test_face_without_descriptor_counts_as_missing(tmp_path):
    faces = all_faces(tmp_path, labels=["Virat"])
    faces[str(tmp_path / "Virat" / "1.png")] = face(10, 10, 50, 50, descriptor=None)

    identity = build_labeled_descriptors(FakeReferencePipeline(faces), "Virat",
                                         reference_image_paths("Virat", tmp_path, 2),
                                         image_loader=path_loader)

    assert len(identity.descriptors) == 1


def test_identity_without_any_face_is_left_out(tmp_path):
    faces = all_faces(tmp_path)
    for path in reference_image_paths("Prakash", tmp_path, 2):
        faces[str(path)] = None

    gallery = build_reference_gallery(FakeReferencePipeline(faces), labels=LABELS, labels_dir=tmp_path,
                                      images_per_label=2, image_loader=path_loader)

    assert [identity.label for identity in gallery] == ["Virat", "Messi"]


def test_strict_build_aborts_on_missing_face(tmp_path):
    faces = all_faces(tmp_path)
    faces[str(tmp_path / "Virat" / "1.png")] = None

    with pytest.raises(DetectionSetupError, match="No face detected"):
        build_reference_gallery(FakeReferencePipeline(faces), labels=LABELS, labels_dir=tmp_path,
                                images_per_label=2, strict=True, image_loader=path_loader)


def test_empty_gallery_is_a_setup_error(tmp_path):
    with pytest.raises(DetectionSetupError, match="No identity"):
        build_reference_gallery(FakeReferencePipeline({}), labels=LABELS, labels_dir=tmp_path,
                                images_per_label=2, image_loader=path_loader)


def test_missing_reference_file_aborts(tmp_path):
    with pytest.raises(DetectionSetupError, match="not found"):
        build_reference_gallery(FakeReferencePipeline({}), labels=["Virat"], labels_dir=tmp_path,
                                images_per_label=2)


def test_load_png_as_bgr(tmp_path):
    image = np.zeros((20, 30, 3), dtype=np.uint8)
    image[:, :, 2] = 255  # red in BGR
    path = tmp_path / "1.png"
    cv2.imwrite(str(path), image)

    loaded = load_reference_image(path)

    assert loaded.shape == (20, 30, 3)
    assert loaded[0, 0].tolist() == [0, 0, 255]


def test_load_falls_back_to_pil(tmp_path):
    path = tmp_path / "1.gif"
    Image.new("RGB", (12, 8), (0, 255, 0)).save(path)

    loaded = load_reference_image(path)

    assert loaded.shape == (8, 12, 3)


def test_load_corrupt_image(tmp_path):
    path = Path(tmp_path) / "1.png"
    path.write_text("not an image")

    with pytest.raises(DetectionSetupError, match="corrupt"):
        load_reference_image(path)
