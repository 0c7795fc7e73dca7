import io
import os

import pytest
from PIL import Image


def create_test_image(format="JPEG"):
    """Return an in-memory image file."""
    img = Image.new('RGB', (100, 100), color='white')
    img_bytes = io.BytesIO()
    img.save(img_bytes, format=format)
    img_bytes.seek(0)
    return img_bytes


# 1. Missing file test
def test_no_file_provided(client):
    response = client.post('/api/process-receipt')

    assert response.status_code == 400
    assert response.get_json()['error'] == 'No image file provided'


# 2. Empty filename test
def test_empty_filename(client):
    data = {
        'image': (io.BytesIO(b''), '')
    }
    response = client.post('/api/process-receipt', data=data)

    assert response.status_code == 400
    assert response.get_json()['error'] == 'No file selected'


# 3. Unsupported MIME type
def test_unsupported_file_type(client):
    fake_file = io.BytesIO(b'not an image')
    data = {
        'image': (fake_file, 'test.txt')
    }
    response = client.post('/api/process-receipt', data=data)

    assert response.status_code == 415
    assert "Unsupported file type" in response.get_json()['error']


def test_valid_image_opens_bill(client, mock_extract_data):
    data = {
        'image': (create_test_image("JPEG"), 'receipt.jpg'),
        'participants': 'Alex, Sam,  ',
    }

    response = client.post(
        '/api/process-receipt',
        data=data,
        content_type='multipart/form-data'
    )

    json_data = response.get_json()

    assert response.status_code == 201
    assert json_data['success'] is True
    assert json_data['access_token']
    assert json_data['bill']['line_items'][0]['description'] == 'Coffee'
    # nothing is allocated yet, so the whole bill waits in the unassigned bucket
    assert json_data['settlement']['per_user']['unassigned']['total'] == 5.0
    assert [i['id'] for i in json_data['unassigned_items']] == ['item1']

    mock_extract_data.assert_called_once()
    assert mock_extract_data.call_args[0][1] == ['Alex', 'Sam']


def test_corrupt_image_is_server_error(client, mock_extract_data):
    data = {'image': (io.BytesIO(b'definitely not a jpeg'), 'receipt.jpg')}

    response = client.post('/api/process-receipt', data=data, content_type='multipart/form-data')

    assert response.status_code == 500
    assert response.get_json()['success'] is False
    mock_extract_data.assert_not_called()


def test_invalid_candidate_is_rejected(client, mocker):
    mocker.patch('app.extract_receipt_data', return_value={'line_items': 'garbled'})
    data = {'image': (create_test_image("PNG"), 'receipt.png')}

    response = client.post('/api/process-receipt', data=data, content_type='multipart/form-data')

    assert response.status_code == 422
    assert response.get_json()['error'].startswith('Failed to process.')


@pytest.mark.parametrize('error', [RuntimeError('tesseract crashed'), OSError('tesseract not installed')])
def test_ocr_failure_is_server_error(client, mocker, error):
    mocker.patch('app.extract_receipt_data', side_effect=error)
    data = {'image': (create_test_image("JPEG"), 'receipt.jpg')}

    response = client.post('/api/process-receipt', data=data, content_type='multipart/form-data')

    assert response.status_code == 500
    assert response.get_json()['error'] == 'Internal Server Error during image processing.'


@pytest.mark.parametrize('error', [None, RuntimeError('tesseract crashed')])
def test_upload_folder_is_left_clean(app, client, mock_extract_data, error):
    folder = app.config['UPLOAD_FOLDER']
    before = set(os.listdir(folder))
    candidate = mock_extract_data.return_value
    seen = []

    def extract(path, names):
        seen.append(os.path.exists(path))
        if error is not None:
            raise error
        return candidate

    mock_extract_data.side_effect = extract
    data = {'image': (create_test_image("JPEG"), 'receipt.jpg')}

    response = client.post('/api/process-receipt', data=data, content_type='multipart/form-data')

    assert response.status_code == (500 if error else 201)
    # the image existed while OCR read it and is gone afterwards
    assert seen == [True]
    assert set(os.listdir(folder)) == before
