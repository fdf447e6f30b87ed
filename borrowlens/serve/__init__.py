"""Local HTTP server that runs the analysis command on submitted Rust programs."""