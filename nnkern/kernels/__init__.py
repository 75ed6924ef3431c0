"""Layout-neutral (NCHW) and CPU (NHWC) reference kernels."""