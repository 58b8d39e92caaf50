from .coord_utils import get_coord_name, get_grid_coord_names, infer_resolution
from .data_utils import validate_date_range, time_span, select_process_data
from .chunking_utils import estimate_bytes_per_pixel, choose_spatial_chunks, spatial_chunk_dict
from .dask_utils import managed_dask_client, compute_context
