import pytest

from facerecog_live import models
from facerecog_live.errors import ModelLoadError


class FakeResponse:
    def __init__(self, payload, status_error=None, stream_error=None):
        self.payload = payload
        self.status_error = status_error
        self.stream_error = stream_error
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def raise_for_status(self):
        if self.status_error:
            raise self.status_error

    def iter_content(self, chunk_size):
        for i in range(0, len(self.payload), chunk_size):
            yield self.payload[i:i + chunk_size]
            if self.stream_error:
                raise self.stream_error


def test_existing_file_is_used_as_is(tmp_path, monkeypatch):
    (tmp_path / models.LANDMARK_WEIGHTS).write_bytes(b"cached")
    monkeypatch.setattr(models.requests, "get", lambda *a, **kw: pytest.fail("should not download"))

    path = models.ensure_model_file(models.LANDMARK_WEIGHTS, tmp_path, download=True)

    assert path == tmp_path / models.LANDMARK_WEIGHTS


def test_missing_file_without_download(tmp_path):
    with pytest.raises(FileNotFoundError, match=models.RECOGNITION_WEIGHTS):
        models.ensure_model_file(models.RECOGNITION_WEIGHTS, tmp_path, download=False)


def test_missing_file_is_downloaded_and_cached(tmp_path, monkeypatch):
    requested = []

    def fake_get(url, stream, timeout):
        requested.append(url)
        return FakeResponse(b"x" * 20000)

    monkeypatch.setattr(models.requests, "get", fake_get)
    models_dir = tmp_path / "models"

    path = models.ensure_model_file(models.DETECTOR_CONFIG, models_dir, download=True)

    assert requested == [models.MODEL_URLS[models.DETECTOR_CONFIG]]
    assert path.read_bytes() == b"x" * 20000
    assert sorted(p.name for p in models_dir.iterdir()) == [models.DETECTOR_CONFIG]


def test_failed_download_leaves_no_file(tmp_path, monkeypatch):
    monkeypatch.setattr(models.requests, "get",
                        lambda *a, **kw: FakeResponse(b"", status_error=models.requests.HTTPError("404")))

    with pytest.raises(models.requests.HTTPError):
        models.ensure_model_file(models.RECOGNITION_WEIGHTS, tmp_path, download=True)

    assert list(tmp_path.iterdir()) == []


def test_connection_lost_mid_download_removes_partial_file(tmp_path, monkeypatch):
    response = FakeResponse(b"x" * 20000, stream_error=models.requests.ConnectionError("reset by peer"))
    monkeypatch.setattr(models.requests, "get", lambda *a, **kw: response)

    with pytest.raises(models.requests.ConnectionError):
        models.ensure_model_file(models.RECOGNITION_WEIGHTS, tmp_path, download=True)

    assert list(tmp_path.iterdir()) == []
    assert response.closed


def test_load_models_returns_all_three():
    loaders = {
        "ssd_face_detector": lambda d, dl: "detector",
        "face_landmark_68": lambda d, dl: "landmarker",
        "face_recognition": lambda d, dl: "encoder",
    }

    loaded = models.load_models("unused", download=False, loaders=loaders)

    assert (loaded.detector, loaded.landmarker, loaded.encoder) == ("detector", "landmarker", "encoder")


def test_any_failing_bundle_fails_the_load():
    def broken(models_dir, download):
        raise FileNotFoundError("lbfmodel.yaml")

    loaders = {
        "ssd_face_detector": lambda d, dl: "detector",
        "face_landmark_68": broken,
        "face_recognition": lambda d, dl: "encoder",
    }

    with pytest.raises(ModelLoadError, match="face_landmark_68") as excinfo:
        models.load_models("unused", download=False, loaders=loaders)
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


def test_real_loaders_report_missing_weights(tmp_path):
    with pytest.raises(ModelLoadError):
        models.load_models(tmp_path, download=False)
